import pytest

from core.exceptions import ValidationError
from services.stages import (
    WORKFLOW,
    Stage,
    has_next_stage,
    next_stage,
    parse_stage,
    previous_stages,
    stage_info,
)


class TestWorkflowOrder:
    def test_workflow_lists_every_stage_in_order(self):
        assert [info.stage for info in WORKFLOW] == [
            Stage.PURCHASE,
            Stage.KACHA,
            Stage.DRAW,
            Stage.READY_COPPER,
            Stage.PVC_PURCHASE,
            Stage.PRODUCTION,
        ]

    def test_stage_info_names(self):
        assert stage_info(Stage.READY_COPPER).name == "Ready"
        assert stage_info(Stage.KACHA).description == "Kacha copper processing"


class TestTransferTable:
    @pytest.mark.parametrize(
        "stage, expected",
        [
            (Stage.PURCHASE, Stage.KACHA),
            (Stage.KACHA, Stage.DRAW),
            (Stage.DRAW, Stage.READY_COPPER),
            (Stage.READY_COPPER, Stage.PRODUCTION),
            (Stage.PVC_PURCHASE, Stage.PRODUCTION),
        ],
    )
    def test_next_stage(self, stage, expected):
        assert next_stage(stage) == expected
        assert has_next_stage(stage)

    def test_production_is_terminal(self):
        assert not has_next_stage(Stage.PRODUCTION)
        with pytest.raises(ValidationError):
            next_stage(Stage.PRODUCTION)

    def test_production_is_fed_by_ready_copper_and_pvc(self):
        assert set(previous_stages(Stage.PRODUCTION)) == {Stage.READY_COPPER, Stage.PVC_PURCHASE}

    def test_purchase_has_no_feeder(self):
        assert previous_stages(Stage.PURCHASE) == []


class TestParseStage:
    @pytest.mark.parametrize("raw", ["ready_copper", "ready-copper", "READY_COPPER", " Ready-Copper "])
    def test_accepts_spellings(self, raw):
        assert parse_stage(raw) == Stage.READY_COPPER

    def test_passes_enum_through(self):
        assert parse_stage(Stage.DRAW) is Stage.DRAW

    @pytest.mark.parametrize("raw", ["", "smelting", None])
    def test_rejects_unknown(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_stage(raw)
        assert exc_info.value.code == "INVALID_REQUEST"
