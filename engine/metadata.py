from __future__ import annotations

from typing import Any, Dict

from engine.measurer import Metadata


def metadata_from_identity_document(doc: Dict[str, Any]) -> Metadata:
    return Metadata(
        region=str(doc.get("region") or ""),
        instance_type=str(doc.get("instanceType") or ""),
        instance_id=str(doc.get("instanceId") or ""),
        account_id=str(doc.get("accountId") or ""),
        architecture=str(doc.get("architecture") or ""),
        availability_zone=str(doc.get("availabilityZone") or ""),
        private_ip=str(doc.get("privateIp") or ""),
        ami_id=str(doc.get("imageId") or ""),
    )


class ImdsMetadataProvider:
    """Node metadata from the IMDS instance-identity document."""

    def __init__(self, imds: Any) -> None:
        self.imds = imds

    async def get(self) -> Metadata:
        return metadata_from_identity_document(await self.imds.identity_document())
