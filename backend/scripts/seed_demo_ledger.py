"""
Walk one demo batch of copper through every ledger stage.

Run locally:
  cd backend && python -m scripts.seed_demo_ledger

It uses the same DATABASE_* env vars as the backend (dotenv supported by core.config).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal

from core.logging_config import configure_logging
from db.database import async_session_maker, create_db_and_tables
from db.inventory.repository import SqlAlchemyInventoryRepository
from services.ledger_service import LedgerService
from services.stages import Stage


@dataclass(frozen=True)
class SeedStep:
    stage: Stage
    owner_id: str
    item_ref: str
    dest_owner_id: str
    new_item_name: str
    quantity: Decimal


PURCHASE = ("supplier-demo", "Copper scrap", Decimal("500"), Decimal("375000"))

STEPS: list[SeedStep] = [
    SeedStep(Stage.PURCHASE, "supplier-demo", "Copper scrap", "kacha-demo", "Kacha copper", Decimal("450")),
    SeedStep(Stage.KACHA, "kacha-demo", "Kacha copper", "drawer-demo", "Drawn rod 8mm", Decimal("420")),
    SeedStep(Stage.DRAW, "drawer-demo", "Drawn rod 8mm", "vendor-demo", "Wire 1.5mm", Decimal("400")),
    SeedStep(Stage.READY_COPPER, "vendor-demo", "Wire 1.5mm", "factory-demo", "Cable 1.5mm", Decimal("380")),
]


async def main() -> None:
    configure_logging()
    await create_db_and_tables()

    async with async_session_maker() as db:
        ledger = LedgerService(SqlAlchemyInventoryRepository(db))

        owner, item, qty, amount = PURCHASE
        await ledger.add(Stage.PURCHASE, owner, item, qty, amount, action_by="seed", notes="Demo purchase")
        await ledger.add(Stage.PVC_PURCHASE, "pvc-supplier-demo", "PVC compound red", Decimal("120"), Decimal("18000"), action_by="seed")

        for step in STEPS:
            await ledger.return_to_next_stage(
                step.stage,
                step.owner_id,
                step.item_ref,
                step.dest_owner_id,
                step.new_item_name,
                step.quantity,
                action_by="seed",
                notes=f"Demo return from {step.stage.value}",
            )

        for summary in await ledger.stock_levels():
            print(f"{summary.stage.value:<14} records={summary.record_count} quantity={summary.total_quantity}")


if __name__ == "__main__":
    asyncio.run(main())
