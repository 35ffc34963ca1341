from sale_indexer.models.base import Base
from sale_indexer.models.comment import Comment
from sale_indexer.models.sale import ContractMetadata, VolumeAggregate

__all__ = [
    "Base",
    "Comment",
    "ContractMetadata",
    "VolumeAggregate",
]
