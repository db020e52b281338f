"""Pydantic model describing the destination of an upload."""

from pydantic import BaseModel, ConfigDict, Field


class UploadConfiguration(BaseModel):
    """Immutable description of an upload target.

    The write channel never inspects this value; it hands it to the RPC
    adapter when a session is opened and stores it in captured states.

    Attributes:
        destination: Name of the object or table receiving the data.
        content_type: MIME type of the uploaded payload.
        metadata: Extra key/value metadata sent when the session is opened.
    """

    model_config = ConfigDict(frozen=True)

    destination: str = Field(min_length=1)
    content_type: str = "application/octet-stream"
    metadata: dict[str, str] = Field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(
            (self.destination, self.content_type, tuple(sorted(self.metadata.items())))
        )
