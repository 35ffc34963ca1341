from sqlalchemy import BigInteger, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sale_indexer.models.base import Base


class Comment(Base):
    """User comment on a sale page. Written by the web app, read-only here."""

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    contract_address: Mapped[str] = mapped_column(String(42))
    wallet_address: Mapped[str] = mapped_column(String(42))
    content: Mapped[str] = mapped_column(Text)
    created_at_ms: Mapped[int] = mapped_column(BigInteger)


# list_comments matches on lower(contract_address): the web app stores
# addresses in whatever case the wallet reported
Index(
    "idx_comments_contract_lower_created",
    func.lower(Comment.contract_address),
    Comment.created_at_ms,
)
