"""Upload-completion event models."""

import re
from typing import List, Optional
from urllib.parse import unquote_plus

from pydantic import BaseModel

from docrag.core.exceptions import InvalidUploadKeyError

UPLOAD_KEY_PATTERN = re.compile(r"^uploads/([^/]+)/([^/]+)$")


class UploadedObject(BaseModel):
    """One object named by an upload notification."""

    bucket: str
    key: str

    def get_document_id(self) -> Optional[str]:
        """Extract the document ID from ``uploads/{ownerId}/{documentId}``."""
        match = UPLOAD_KEY_PATTERN.match(self.key)
        return match.group(2) if match else None

    def require_document_id(self) -> str:
        """
        Return the document ID or fail for keys outside the upload layout.

        Raises:
            InvalidUploadKeyError: If the key does not match.
        """
        document_id = self.get_document_id()
        if not document_id:
            raise InvalidUploadKeyError(
                f"Could not extract documentId from key {self.key!r}; "
                "expected uploads/{ownerId}/{documentId}"
            )
        return document_id


class TriggerMessage(BaseModel):
    """A queue message carrying an object-store event notification."""

    message_id: str
    body: dict

    def get_objects(self) -> List[UploadedObject]:
        """
        List the uploaded objects in this message.

        Keys arrive URL-encoded with ``+`` for spaces, as object-store
        notifications send them.

        Returns:
            Objects in notification order.
        """
        records = self.body.get("Records") or [self.body]
        objects = []
        for record in records:
            s3 = record.get("s3")
            if s3 is None:
                # Flat {bucket, key} event
                bucket = record.get("bucket", "")
                raw_key = record.get("key", "")
            else:
                bucket = (s3.get("bucket") or {}).get("name", "")
                raw_key = (s3.get("object") or {}).get("key", "")
            objects.append(UploadedObject(bucket=bucket, key=unquote_plus(raw_key)))
        return objects
