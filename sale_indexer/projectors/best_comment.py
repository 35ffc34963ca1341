"""Best-comment ranker.

On every inserted comment, re-rank all comments of that contract by the
commenter's on-chain holding in the sale contract:

  * the first comment considered is the provisional best
  * a strictly greater balance displaces it
  * an equal balance displaces it only if the comment is newer
  * a comment whose balance lookup failed is skipped and can never win

Balances are compared as Python ints (raw chain units). The winner replaces
``best_comment`` on the metadata record wholesale.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from sale_indexer.core.address import canonicalize_address, short_address
from sale_indexer.core.results import HandlerResult
from sale_indexer.store.base import AggregateStore, CommentRecord


class BalanceOracle(Protocol):
    async def get_balance(self, contract_address: str, wallet_address: str) -> int: ...


@dataclass(frozen=True)
class BalanceLookup:
    comment: CommentRecord
    balance: int | None  # None when the lookup failed


def pick_best_comment(lookups: Iterable[BalanceLookup]) -> CommentRecord | None:
    """Fold lookups (in the order given) into the winning comment."""
    best: CommentRecord | None = None
    best_balance = 0
    for item in lookups:
        if item.balance is None:
            continue
        if best is None:
            best, best_balance = item.comment, item.balance
        elif item.balance > best_balance:
            best, best_balance = item.comment, item.balance
        elif item.balance == best_balance and item.comment.created_at_ms > best.created_at_ms:
            best = item.comment
    return best


class BestCommentRanker:
    def __init__(
        self,
        store: AggregateStore,
        oracle: BalanceOracle,
        *,
        concurrency: int = 8,
    ) -> None:
        self._store = store
        self._oracle = oracle
        self._semaphore = asyncio.Semaphore(concurrency)

    async def on_comment_inserted(self, comment: CommentRecord) -> HandlerResult:
        try:
            address = canonicalize_address(comment.contract_address)
        except ValueError as e:
            logger.warning(f"[RANK] Comment #{comment.id} has a bad contract address: {e}")
            return HandlerResult.failed(comment.contract_address, e)

        try:
            metadata = await self._store.get_metadata(address)
            if metadata is None:
                logger.info(f"[RANK] No metadata for {address}, skip")
                return HandlerResult.missing(address)

            comments = await self._store.list_comments(address)
        except Exception as e:
            logger.error(f"[RANK] Store read failed for {address}: {e}")
            return HandlerResult.failed(address, e)

        if not comments:
            return HandlerResult.noop(address, "no comments")

        lookups = await self._lookup_balances(address, comments)
        best = pick_best_comment(lookups)
        if best is None:
            logger.warning(f"[RANK] Every balance lookup failed for {address}, keep current best")
            return HandlerResult.failed(
                address, RuntimeError("all balance lookups failed")
            )

        try:
            updated = await self._store.update_metadata(
                address,
                best_comment={"content": best.content, "walletAddress": best.wallet_address},
            )
        except Exception as e:
            logger.error(f"[RANK] best_comment write failed for {address}: {e}")
            return HandlerResult.failed(address, e)
        if not updated:
            return HandlerResult.missing(address)

        logger.info(
            f"[RANK] {address} best comment #{best.id} by {short_address(best.wallet_address)} "
            f"({len(comments)} comments)"
        )
        return HandlerResult.applied(address, f"comment #{best.id}")

    async def _lookup_balances(
        self, contract_address: str, comments: list[CommentRecord]
    ) -> list[BalanceLookup]:
        # one read per distinct wallet, fanned out under the semaphore
        wallets = list(dict.fromkeys(c.wallet_address for c in comments))
        balances = await asyncio.gather(
            *(self._balance_of(contract_address, w) for w in wallets)
        )
        by_wallet = dict(zip(wallets, balances))
        return [BalanceLookup(c, by_wallet[c.wallet_address]) for c in comments]

    async def _balance_of(self, contract_address: str, wallet: str) -> int | None:
        async with self._semaphore:
            try:
                return int(await self._oracle.get_balance(contract_address, wallet))
            except Exception as e:
                logger.warning(
                    f"[RANK] Balance lookup failed for {short_address(wallet)} on {contract_address}: {e}"
                )
                return None
