from datetime import datetime
from sqlmodel import SQLModel, Field

from orderline.models.task import utcnow


class StorageEntry(SQLModel, table=True):
    """
    One key of a profile's key-value storage.

    Key fields:
    - namespace: the profile the key belongs to
    - revision: bumped on every write, used to spot changes from other contexts
    - origin: id of the storage context that wrote the current value
    """

    __tablename__ = "storage_entries"

    namespace: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    value: str
    revision: int = Field(default=1)
    origin: str = Field(default="")
    updated_at: datetime = Field(default_factory=utcnow)
