"""Report and epoch history storage backed by SQLite via SQLAlchemy."""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import UTC, datetime
from typing import Any, cast

from jsonschema import Draft202012Validator
from sqlalchemy import BigInteger, DateTime, Engine, Integer, String, Text, create_engine, desc, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from flywheel.core.errors import ReportValidationError
from flywheel.core.types import AllocationResult, EpochResult, FeeDetectionResult

_NON_NEGATIVE = {"type": "number", "minimum": 0}

REPORT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "EpochReport",
    "type": "object",
    "required": ["epoch_id", "timestamp_ms", "fees", "allocation"],
    "properties": {
        "epoch_id": {"type": "integer", "minimum": 1},
        "timestamp_ms": {"type": "integer", "minimum": 0},
        "fees": {
            "type": "object",
            "required": ["total_usd", "sources"],
            "properties": {
                "total_usd": _NON_NEGATIVE,
                "sources": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["asset", "amount", "usd_value"],
                        "properties": {
                            "asset": {"type": "string", "minLength": 1},
                            "amount": _NON_NEGATIVE,
                            "usd_value": _NON_NEGATIVE,
                        },
                    },
                },
            },
        },
        "allocation": {
            "type": "object",
            "required": ["buyback_usd", "ads_usd", "burn_usd", "lp_add_usd", "total_allocated"],
            "properties": {
                "buyback_usd": _NON_NEGATIVE,
                "ads_usd": _NON_NEGATIVE,
                "burn_usd": _NON_NEGATIVE,
                "lp_add_usd": _NON_NEGATIVE,
                "total_allocated": _NON_NEGATIVE,
            },
        },
        "buyback_tx_ref": {"type": ["string", "null"]},
        "ads_campaign_ref": {"type": ["string", "null"]},
    },
    "additionalProperties": False,
}


class Base(DeclarativeBase):
    """Declarative base for flywheel tables."""


class EpochReport(Base):
    """Validated per-epoch report payload."""

    __tablename__ = "epoch_report"

    report_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    epoch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


class EpochHistory(Base):
    """Append-only record of every epoch outcome, successful or not."""

    __tablename__ = "epoch_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    epoch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(nullable=False)
    fees_usd: Mapped[float] = mapped_column(nullable=False)
    buyback_tx_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    ads_campaign_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    report_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )


def build_report_payload(
    *,
    epoch_id: int,
    timestamp_ms: int,
    fees: FeeDetectionResult,
    allocation: AllocationResult,
    buyback_tx_ref: str | None = None,
    ads_campaign_ref: str | None = None,
) -> dict[str, Any]:
    return {
        "epoch_id": epoch_id,
        "timestamp_ms": timestamp_ms,
        "fees": {
            "total_usd": fees.total_usd,
            "sources": [
                {"asset": entry.asset, "amount": entry.amount, "usd_value": entry.usd_value}
                for entry in fees.sources
            ],
        },
        "allocation": {
            "buyback_usd": allocation.buyback_usd,
            "ads_usd": allocation.ads_usd,
            "burn_usd": allocation.burn_usd,
            "lp_add_usd": allocation.lp_add_usd,
            "total_allocated": allocation.total_allocated,
        },
        "buyback_tx_ref": buyback_tx_ref,
        "ads_campaign_ref": ads_campaign_ref,
    }


def _history_row_to_dict(row: EpochHistory) -> dict[str, Any]:
    return {
        "epoch_id": row.epoch_id,
        "success": row.success,
        "fees_usd": row.fees_usd,
        "buyback_tx_ref": row.buyback_tx_ref,
        "ads_campaign_ref": row.ads_campaign_ref,
        "report_ref": row.report_ref,
        "error": row.error,
        "summary": row.summary,
        "started_at_ms": row.started_at_ms,
        "created_at": row.created_at.isoformat(),
    }


class ReportStore:
    """Report writer plus epoch history gateway."""

    def __init__(self, db_url: str) -> None:
        self._engine: Engine = create_engine(db_url, future=True)
        self._validator = Draft202012Validator(REPORT_SCHEMA)
        Base.metadata.create_all(self._engine)

    def validate(self, payload: dict[str, Any]) -> None:
        errors = sorted(self._validator.iter_errors(payload), key=str)
        if errors:
            details = "; ".join(err.message for err in errors)
            raise ReportValidationError(f"Invalid report payload: {details}")

    async def write(
        self,
        *,
        epoch_id: int,
        timestamp_ms: int,
        fees: FeeDetectionResult,
        allocation: AllocationResult,
        buyback_tx_ref: str | None = None,
        ads_campaign_ref: str | None = None,
    ) -> str:
        """Validate and persist the epoch report; return its reference."""
        payload = build_report_payload(
            epoch_id=epoch_id,
            timestamp_ms=timestamp_ms,
            fees=fees,
            allocation=allocation,
            buyback_tx_ref=buyback_tx_ref,
            ads_campaign_ref=ads_campaign_ref,
        )
        self.validate(payload)
        report_id = str(uuid.uuid4())
        await asyncio.to_thread(self._insert_report, report_id, epoch_id, payload)
        return report_id

    def _insert_report(self, report_id: str, epoch_id: int, payload: dict[str, Any]) -> None:
        with Session(self._engine) as session:
            session.add(
                EpochReport(
                    report_id=report_id,
                    epoch_id=epoch_id,
                    payload_json=json.dumps(payload, ensure_ascii=False),
                )
            )
            session.commit()

    def get_report(self, report_id: str) -> dict[str, Any] | None:
        with Session(self._engine) as session:
            record = session.get(EpochReport, report_id)
            if record is None:
                return None
            return cast(dict[str, Any], json.loads(record.payload_json))

    def record_epoch(self, result: EpochResult) -> None:
        with Session(self._engine) as session:
            session.add(
                EpochHistory(
                    epoch_id=result.epoch_id,
                    success=result.success,
                    fees_usd=result.fees_usd,
                    buyback_tx_ref=result.buyback_tx_ref,
                    ads_campaign_ref=result.ads_campaign_ref,
                    report_ref=result.report_ref,
                    error=result.error,
                    summary=result.summary,
                    started_at_ms=result.started_at_ms,
                )
            )
            session.commit()

    def recent_epochs(self, n: int) -> list[dict[str, Any]]:
        """Return the most recent epoch outcomes ordered from oldest to newest."""
        with Session(self._engine) as session:
            rows = session.execute(
                select(EpochHistory).order_by(desc(EpochHistory.id)).limit(max(0, n))
            ).scalars()
            recent = [_history_row_to_dict(row) for row in rows]
        recent.reverse()
        return recent

    def latest_epoch(self, *, success_only: bool = False) -> dict[str, Any] | None:
        statement = select(EpochHistory).order_by(desc(EpochHistory.id)).limit(1)
        if success_only:
            statement = statement.where(EpochHistory.success.is_(True))
        with Session(self._engine) as session:
            row = session.execute(statement).scalars().first()
            return None if row is None else _history_row_to_dict(row)
