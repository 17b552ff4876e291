"""Repository for batch-level artifacts: FAQs and contractor questions."""

import hashlib
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import BidFaq, ContractorQuestion
from bidsmart.repositories.base_repository import BaseRepository

_WHITESPACE = re.compile(r"\s+")


def question_key(question_text: str) -> str:
    """Stable dedup key for a question: sha256 of its normalized text."""
    normalized = _WHITESPACE.sub(" ", question_text.strip().lower())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def faq_scope_key(faq_key: str, bid_id: Optional[UUID]) -> str:
    return f"{bid_id}:{faq_key}" if bid_id else f"project:{faq_key}"


class ArtifactRepository(BaseRepository[BidFaq]):
    """Writes FAQs and questions so that redelivered batches do not duplicate them."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, BidFaq)

    async def upsert_faq(
        self,
        project_id: UUID,
        bid_id: Optional[UUID],
        faq_key: str,
        values: Dict[str, Any],
    ) -> None:
        """Insert a FAQ or overwrite the answer stored under the same key."""
        scope_key = faq_scope_key(faq_key, bid_id)
        stmt = self.insert_stmt(BidFaq).values(
            project_id=project_id,
            bid_id=bid_id,
            faq_key=faq_key,
            scope_key=scope_key,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BidFaq.project_id, BidFaq.scope_key],
            set_={**values, "updated_at": datetime.now(timezone.utc)},
        )
        await self.session.execute(stmt)

    async def insert_question(self, bid_id: UUID, values: Dict[str, Any]) -> bool:
        """Insert a contractor question unless the bid already has the same one.

        Returns:
            True if a row was written, False for a duplicate
        """
        stmt = self.insert_stmt(ContractorQuestion).values(
            bid_id=bid_id,
            question_key=question_key(values["question_text"]),
            **values,
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[ContractorQuestion.bid_id, ContractorQuestion.question_key]
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
