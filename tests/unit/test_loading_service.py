"""
Unit tests for LoadingService.

Run: pytest tests/unit/test_loading_service.py -v
"""

import pytest
from sqlalchemy import func, select

from models.auth import Actor
from models.loading import (
    BundleSelection,
    LoadingStatus,
    LoadingTransactionCreate,
    RecommendationTier,
    is_valid_transition,
)
from tables import Bundle, LoadingTransaction
from exceptions import (
    BundleLockedError,
    BundleNotFoundError,
    EmployeeInactiveError,
    EmployeeNotFoundError,
    InvalidStateError,
    LoadingTransactionNotFoundError,
    PermissionDeniedError,
    SizeCategoryNotFoundError,
    ValidationError,
)
from tests.factories import add_bundle, add_cutting, add_loading


def _create(employee_id="E1", order_id=1001, bundles=(), quantities=None, line_no=1):
    return LoadingTransactionCreate(
        employee_id=employee_id,
        line_no=line_no,
        order_id=order_id,
        quantities=quantities if quantities is not None else {"M": 20},
        bundles=list(bundles),
    )


def _loading_count(session_factory) -> int:
    with session_factory() as session:
        return session.execute(select(func.count(LoadingTransaction.loading_id))).scalar_one()


def _bundle(session_factory, bundle_id) -> Bundle:
    with session_factory() as session:
        return session.get(Bundle, bundle_id)


@pytest.fixture
def bundles(session_factory):
    """Two free bundles of order 1001 (1-10, 11-20) and one of order 1002."""
    cutting_id = add_cutting(session_factory, order_id=1001, size="M", qty=100)
    other_cut = add_cutting(session_factory, order_id=1002, size="L", qty=100)
    return [
        add_bundle(session_factory, cutting_id, 1, 10),
        add_bundle(session_factory, cutting_id, 11, 20),
        add_bundle(session_factory, other_cut, 21, 30),
    ]


@pytest.fixture
def actor() -> Actor:
    return Actor(user_id="user-1", employee_id="E5")


class TestStateRules:
    """Tests for the loading state machine table."""

    def test_valid_transitions(self):
        assert is_valid_transition(LoadingStatus.PENDING_APPROVAL, LoadingStatus.APPROVED)
        assert is_valid_transition(LoadingStatus.APPROVED, LoadingStatus.COMPLETED)

    def test_invalid_transitions(self):
        assert not is_valid_transition(LoadingStatus.PENDING_APPROVAL, LoadingStatus.COMPLETED)
        assert not is_valid_transition(LoadingStatus.COMPLETED, LoadingStatus.APPROVED)
        assert not is_valid_transition(LoadingStatus.APPROVED, LoadingStatus.APPROVED)


class TestCreateTransaction:
    """Tests for LoadingService.create_transaction()"""

    def test_creates_pending_and_stamps_bundles(self, loading_service, session_factory, bundles, actor):
        tx = loading_service.create_transaction(
            _create(bundles=[
                BundleSelection(bundle_id=bundles[0], minus_qty=2, reason="stain"),
                BundleSelection(bundle_id=bundles[1]),
            ]),
            actor
        )

        assert tx.approved_status == LoadingStatus.PENDING_APPROVAL
        assert tx.category_name == "MEN TOP"
        assert tx.style_id == "ST-100"
        assert tx.created_by == "E1"
        assert tx.quantities == {"S": 0, "M": 20, "L": 0, "XL": 0}
        assert tx.bundle_ids == bundles[:2]

        stamped = _bundle(session_factory, bundles[0])
        assert stamped.loading_tx_id == tx.loading_id
        assert stamped.size_category_id == 1
        assert stamped.minus_qty == 2
        assert stamped.minus_reason == "stain"
        assert stamped.final_qty == 8
        assert _bundle(session_factory, bundles[1]).final_qty == 10

    def test_minus_larger_than_qty_floors_at_zero(self, loading_service, session_factory, bundles, actor):
        loading_service.create_transaction(
            _create(bundles=[BundleSelection(bundle_id=bundles[0], minus_qty=15)]), actor
        )

        assert _bundle(session_factory, bundles[0]).final_qty == 0

    def test_negative_minus_rejected(self, loading_service, bundles, actor):
        with pytest.raises(ValidationError) as exc_info:
            loading_service.create_transaction(
                _create(bundles=[BundleSelection(bundle_id=bundles[0], minus_qty=-1)]), actor
            )

        assert exc_info.value.code == "INVALID_MINUS_QTY"

    def test_level_above_seven_denied(self, loading_service, session_factory, actor):
        with pytest.raises(PermissionDeniedError):
            loading_service.create_transaction(_create(employee_id="E2"), actor)

        assert _loading_count(session_factory) == 0

    def test_non_production_denied(self, loading_service, actor):
        with pytest.raises(PermissionDeniedError) as exc_info:
            loading_service.create_transaction(_create(employee_id="E4"), actor)

        assert exc_info.value.code == "WRONG_DEPARTMENT"

    def test_inactive_creator(self, loading_service, actor):
        with pytest.raises(EmployeeInactiveError):
            loading_service.create_transaction(_create(employee_id="E9"), actor)

    def test_unknown_creator(self, loading_service, actor):
        with pytest.raises(EmployeeNotFoundError):
            loading_service.create_transaction(_create(employee_id="NOPE"), actor)

    def test_unknown_size_in_quantities(self, loading_service, actor):
        with pytest.raises(ValidationError) as exc_info:
            loading_service.create_transaction(_create(quantities={"XXXL": 5}), actor)

        assert exc_info.value.code == "UNKNOWN_SIZE"

    def test_bundle_of_other_order_rejected(self, loading_service, session_factory, bundles, actor):
        with pytest.raises(ValidationError) as exc_info:
            loading_service.create_transaction(
                _create(bundles=[BundleSelection(bundle_id=bundles[2])]), actor
            )

        assert exc_info.value.code == "BUNDLE_ORDER_MISMATCH"
        assert _loading_count(session_factory) == 0

    def test_missing_bundle(self, loading_service, actor):
        with pytest.raises(BundleNotFoundError):
            loading_service.create_transaction(_create(bundles=[BundleSelection(bundle_id=999)]), actor)

    def test_consumed_bundle_rolls_back_everything(self, loading_service, session_factory, bundles, actor):
        """A locked bundle aborts the whole transaction, earlier stamps included."""
        loading_service.create_transaction(_create(bundles=[BundleSelection(bundle_id=bundles[1])]), actor)

        with pytest.raises(BundleLockedError):
            loading_service.create_transaction(
                _create(bundles=[
                    BundleSelection(bundle_id=bundles[0]),
                    BundleSelection(bundle_id=bundles[1]),
                ]),
                actor
            )

        assert _loading_count(session_factory) == 1
        assert _bundle(session_factory, bundles[0]).loading_tx_id is None

    def test_duplicate_bundle_selection(self, loading_service, bundles, actor):
        with pytest.raises(ValidationError) as exc_info:
            loading_service.create_transaction(
                _create(bundles=[BundleSelection(bundle_id=bundles[0]), BundleSelection(bundle_id=bundles[0])]),
                actor
            )

        assert exc_info.value.code == "DUPLICATE_BUNDLE"


class TestApprove:
    """Tests for LoadingService.approve()"""

    def test_any_department_within_level_can_approve(self, loading_service, bundles, actor):
        tx = loading_service.create_transaction(_create(), actor)

        approved = loading_service.approve(tx.loading_id, "men top", "E4", actor)

        assert approved.approved_status == LoadingStatus.APPROVED
        assert approved.approved_by == "E4"
        assert approved.approved_date is not None

    def test_level_eight_cannot_approve(self, loading_service, actor):
        tx = loading_service.create_transaction(_create(), actor)

        with pytest.raises(PermissionDeniedError):
            loading_service.approve(tx.loading_id, "MEN TOP", "E2", actor)

    def test_approve_twice_is_invalid_state(self, loading_service, actor):
        tx = loading_service.create_transaction(_create(), actor)
        loading_service.approve(tx.loading_id, "MEN TOP", "E4", actor)

        with pytest.raises(InvalidStateError) as exc_info:
            loading_service.approve(tx.loading_id, "MEN TOP", "E4", actor)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["current_state"] == "APPROVED"

    def test_legacy_null_status_counts_as_pending(self, loading_service, session_factory, actor):
        loading_id = add_loading(session_factory, approved_status=None, handover_by=None)

        approved = loading_service.approve(loading_id, "MEN TOP", "E4", actor)

        assert approved.approved_status == LoadingStatus.APPROVED

    def test_unknown_category(self, loading_service, actor):
        tx = loading_service.create_transaction(_create(), actor)

        with pytest.raises(SizeCategoryNotFoundError):
            loading_service.approve(tx.loading_id, "KIDS BOTTOM", "E4", actor)

    def test_unknown_transaction(self, loading_service, actor):
        with pytest.raises(LoadingTransactionNotFoundError):
            loading_service.approve(555, "MEN TOP", "E4", actor)


class TestReject:
    """Tests for LoadingService.reject()"""

    def test_reject_deletes_row_and_releases_bundles(self, loading_service, session_factory, bundles, actor):
        tx = loading_service.create_transaction(
            _create(bundles=[BundleSelection(bundle_id=bundles[0], minus_qty=3, reason="hole")]), actor
        )

        result = loading_service.reject(tx.loading_id, "MEN TOP", actor)

        assert result.released_bundle_ids == [bundles[0]]
        assert _loading_count(session_factory) == 0
        released = _bundle(session_factory, bundles[0])
        assert released.loading_tx_id is None
        assert released.minus_qty == 0
        assert released.minus_reason is None
        assert released.final_qty is None
        assert bundles[0] in [b.bundle_id for b in loading_service.get_available_bundles(1001)]

    def test_released_bundle_can_be_loaded_again(self, loading_service, bundles, actor):
        first = loading_service.create_transaction(_create(bundles=[BundleSelection(bundle_id=bundles[0])]), actor)
        loading_service.reject(first.loading_id, "MEN TOP", actor)

        second = loading_service.create_transaction(_create(bundles=[BundleSelection(bundle_id=bundles[0])]), actor)

        assert second.bundle_ids == [bundles[0]]

    def test_cannot_reject_approved(self, loading_service, actor):
        tx = loading_service.create_transaction(_create(), actor)
        loading_service.approve(tx.loading_id, "MEN TOP", "E4", actor)

        with pytest.raises(InvalidStateError):
            loading_service.reject(tx.loading_id, "MEN TOP", actor)


class TestHandover:
    """Tests for LoadingService.handover()"""

    def _approved(self, loading_service, actor):
        tx = loading_service.create_transaction(_create(), actor)
        return loading_service.approve(tx.loading_id, "MEN TOP", "E4", actor)

    def test_handover_completes(self, loading_service, actor):
        tx = self._approved(loading_service, actor)

        done = loading_service.handover(tx.loading_id, "MEN TOP", "E1", actor)

        assert done.approved_status == LoadingStatus.COMPLETED
        assert done.handover_by == "E1"
        assert done.handover_style_id == "ST-100"
        assert done.handover_date is not None

    def test_handover_before_approval_is_invalid_state(self, loading_service, actor):
        tx = loading_service.create_transaction(_create(), actor)

        with pytest.raises(InvalidStateError):
            loading_service.handover(tx.loading_id, "MEN TOP", "E1", actor)

    def test_handover_twice_is_invalid_state(self, loading_service, actor):
        tx = self._approved(loading_service, actor)
        loading_service.handover(tx.loading_id, "MEN TOP", "E1", actor)

        with pytest.raises(InvalidStateError):
            loading_service.handover(tx.loading_id, "MEN TOP", "E1", actor)

    def test_recipient_must_be_production(self, loading_service, actor):
        tx = self._approved(loading_service, actor)

        with pytest.raises(PermissionDeniedError):
            loading_service.handover(tx.loading_id, "MEN TOP", "E4", actor)

    def test_style_change_needs_level_five(self, loading_service, actor):
        """Level 6 may receive but not substitute the style."""
        tx = self._approved(loading_service, actor)

        with pytest.raises(PermissionDeniedError):
            loading_service.handover(tx.loading_id, "MEN TOP", "E1", actor, variant_style_id="ST-200")

    def test_style_change_by_senior_recipient(self, loading_service, actor):
        tx = self._approved(loading_service, actor)

        done = loading_service.handover(tx.loading_id, "MEN TOP", "E3", actor, variant_style_id="ST-200")

        assert done.handover_style_id == "ST-200"
        assert done.style_id == "ST-100"

    def test_same_style_as_variant_is_not_a_change(self, loading_service, actor):
        tx = self._approved(loading_service, actor)

        done = loading_service.handover(tx.loading_id, "MEN TOP", "E1", actor, variant_style_id="ST-100")

        assert done.approved_status == LoadingStatus.COMPLETED


class TestRecommendation:
    """Tests for LoadingService.get_recommendation()"""

    def test_no_history(self, loading_service):
        result = loading_service.get_recommendation(7)

        assert result.has_history is False
        assert result.recommendation is None
        assert "Manual selection" in result.message

    def test_same_order_with_pieces_left(self, loading_service, session_factory):
        add_loading(session_factory, order_id=1001, line_no=1)
        add_cutting(session_factory, order_id=1001, qty=50)

        result = loading_service.get_recommendation(1)

        assert result.tier == RecommendationTier.SAME_ORDER
        assert result.recommendation.order_id == 1001
        assert result.recommendation.remaining == 50

    def test_falls_back_to_same_style_colour(self, loading_service, session_factory):
        """Last order fully loaded, another order shares style and colour."""
        loading_id = add_loading(session_factory, order_id=1001, line_no=1)
        cut = add_cutting(session_factory, order_id=1001, qty=60)
        add_bundle(session_factory, cut, 1, 60, loading_tx_id=loading_id)
        add_cutting(session_factory, order_id=1002, size="L", qty=50)
        add_cutting(session_factory, order_id=1003, colour_code="RED", qty=40)

        result = loading_service.get_recommendation(1)

        assert result.has_history is True
        assert result.last_loading.loading_id == loading_id
        assert result.tier == RecommendationTier.SAME_STYLE_COLOUR
        assert result.recommendation.order_id == 1002
        assert result.recommendation.total_cut == 50

    def test_falls_back_to_same_style(self, loading_service, session_factory):
        add_loading(session_factory, order_id=1001, line_no=1)
        add_cutting(session_factory, order_id=1003, colour_code="RED", qty=40)

        result = loading_service.get_recommendation(1)

        assert result.tier == RecommendationTier.SAME_STYLE
        assert result.recommendation.colour_code == "RED"

    def test_uses_latest_handover(self, loading_service, session_factory):
        add_loading(session_factory, order_id=1003, colour_code="RED", line_no=1, handover_days_ago=5)
        add_loading(session_factory, order_id=1001, line_no=1, handover_days_ago=1)
        add_cutting(session_factory, order_id=1001, qty=10)

        result = loading_service.get_recommendation(1)

        assert result.last_loading.order_id == 1001

    def test_history_without_candidates(self, loading_service, session_factory):
        add_loading(session_factory, order_id=1001, line_no=1)

        result = loading_service.get_recommendation(1)

        assert result.has_history is True
        assert result.recommendation is None
        assert result.tier is None


class TestDashboard:
    """Tests for LoadingService.get_dashboard()"""

    def test_groups_transactions(self, loading_service, session_factory):
        completed = add_loading(session_factory, approved_status="COMPLETED")
        legacy = add_loading(session_factory, approved_status="APPROVED", handover_by="E1")
        waiting = add_loading(session_factory, approved_status="APPROVED", handover_by=None)
        pending = add_loading(session_factory, approved_status="PENDING_APPROVAL", handover_by=None)
        legacy_pending = add_loading(session_factory, approved_status=None, handover_by=None)

        dashboard = loading_service.get_dashboard(Actor(user_id="u", employee_id="E5"))

        assert sorted(t.loading_id for t in dashboard.transactions) == sorted([completed, legacy])
        assert [t.loading_id for t in dashboard.pending_handover] == [waiting]
        assert sorted(t.loading_id for t in dashboard.pending) == sorted([pending, legacy_pending])
        assert dashboard.pending[0].category_name == "MEN TOP"

    def test_non_supermarket_denied(self, loading_service):
        with pytest.raises(PermissionDeniedError):
            loading_service.get_dashboard(Actor(user_id="u", employee_id="E1"))

    def test_actor_without_employee_denied(self, loading_service):
        with pytest.raises(PermissionDeniedError):
            loading_service.get_dashboard(Actor(user_id="u"))
