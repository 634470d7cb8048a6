import pytest
from datetime import date
from decimal import Decimal
from pydantic import ValidationError

from coparent_service.models.expenses import ExpenseChild, ExpenseStatus, SplitMethod
from coparent_service.models.obligations import PaymentObligation
from coparent_service.schemas.audit_schema import Actor
from coparent_service.schemas.expense_schema import ExpenseCreate, ExpenseQuery, ExpenseUpdate
from coparent_service.services import audit_service
from coparent_service.services.errors import ExpenseValidationError, NotFoundError, PermissionDeniedError
from coparent_service.services.expense_service import (
    can_view_expense, delete_expense, get_expense, get_expense_or_404, get_expenses, get_monthly_summary,
    get_owed_summary, get_visible_expense, serialize_expense, update_expense
)
from coparent_service.services.status_service import transition


@pytest.mark.integration
class TestCreateExpense:

    def test_starts_pending_with_children(self, db_session, expense_factory):
        expense = expense_factory(child_ids=["kid-1", "kid-2", "kid-1"])

        out = serialize_expense(db_session, expense)

        assert out.status == ExpenseStatus.pending
        assert sorted(out.child_ids) == ["kid-1", "kid-2"]
        assert out.amount == Decimal("100.00")

    def test_split_maps_round_trip_as_decimal(self, db_session, expense_factory):
        expense = expense_factory(split_method=SplitMethod.custom,
                                  split_percentage={"alice": Decimal("62.5"), "bob": Decimal("37.5")})

        assert expense.split_percentage == {"alice": "62.5", "bob": "37.5"}
        out = serialize_expense(db_session, expense)
        assert out.split_percentage == {"alice": Decimal("62.5"), "bob": Decimal("37.5")}

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            ExpenseCreate(description="Shoes", date=date(2024, 1, 1), amount=Decimal(amount))

    def test_percentages_are_bounded(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(description="Shoes", date=date(2024, 1, 1), amount=Decimal("10"),
                          split_method=SplitMethod.custom, split_percentage={"bob": Decimal("120")})

    def test_custom_category_is_allowed(self, expense_factory):
        assert expense_factory(category="swimming").category == "swimming"


@pytest.mark.integration
class TestGetExpenses:

    @pytest.fixture
    def expenses(self, db_session, expense_factory, mock_producer):
        dentist = expense_factory(description="Dentist visit", category="medical", expense_date=date(2024, 5, 10))
        books = expense_factory(description="School books", category="education", expense_date=date(2024, 4, 2))
        shoes = expense_factory(paid_by="bob", description="Winter shoes", category="clothing",
                                expense_date=date(2024, 6, 20))
        transition(db_session, books, "approve", Actor.user("bob"), producer=mock_producer)
        return {"dentist": dentist, "books": books, "shoes": shoes}

    def test_default_returns_all_newest_first(self, db_session, expenses):
        result = get_expenses(db_session)
        assert [e.description for e in result] == ["Winter shoes", "Dentist visit", "School books"]

    def test_status_filter(self, db_session, expenses):
        result = get_expenses(db_session, ExpenseQuery(status=ExpenseStatus.approved))
        assert [e.id for e in result] == [expenses["books"].id]

    def test_category_filter(self, db_session, expenses):
        result = get_expenses(db_session, ExpenseQuery(category="clothing"))
        assert [e.id for e in result] == [expenses["shoes"].id]

    def test_search_is_case_insensitive(self, db_session, expenses):
        result = get_expenses(db_session, ExpenseQuery(search="SCHOOL"))
        assert [e.id for e in result] == [expenses["books"].id]

    def test_payer_and_date_range(self, db_session, expenses):
        query = ExpenseQuery(paid_by="alice", date_from=date(2024, 5, 1), date_to=date(2024, 5, 31))
        assert [e.id for e in get_expenses(db_session, query)] == [expenses["dentist"].id]

    def test_query_is_immutable(self):
        query = ExpenseQuery()
        with pytest.raises(ValidationError):
            query.search = "books"


@pytest.mark.integration
class TestVisibility:

    def test_family_sees_each_others_expenses(self, db_session, expense_factory, family_circle):
        expense = expense_factory(paid_by="alice")

        assert can_view_expense(db_session, expense, "alice")
        assert can_view_expense(db_session, expense, "bob")
        assert not can_view_expense(db_session, expense, "carol")

    def test_child_on_expense_grants_access(self, db_session, expense_factory, family_circle):
        expense = expense_factory(paid_by="grandma", child_ids=[family_circle["child_id"]])

        assert can_view_expense(db_session, expense, "bob")
        assert not can_view_expense(db_session, expense, "carol")

    def test_outsider_is_refused(self, db_session, expense_factory, family_circle):
        expense = expense_factory(paid_by="alice")

        with pytest.raises(PermissionDeniedError):
            get_visible_expense(db_session, expense.id, "carol")
        assert get_visible_expense(db_session, expense.id, "bob").id == expense.id

    def test_list_is_scoped_to_viewer(self, db_session, expense_factory, family_circle):
        ours = expense_factory(paid_by="alice", description="Dentist visit")
        theirs = expense_factory(paid_by="carol", description="Piano lessons")
        via_child = expense_factory(paid_by="grandma", description="Birthday gift",
                                    child_ids=[family_circle["child_id"]])

        assert {e.id for e in get_expenses(db_session, viewer_id="bob")} == {ours.id, via_child.id}
        assert [e.id for e in get_expenses(db_session, viewer_id="carol")] == [theirs.id]
        assert len(get_expenses(db_session)) == 3


@pytest.mark.integration
class TestUpdateExpense:

    def test_payer_updates_fields_and_children(self, db_session, expense_factory):
        expense = expense_factory(child_ids=["kid-1"])

        updated = update_expense(
            db_session, expense.id,
            ExpenseUpdate(amount=Decimal("120.50"), notes="Includes x-ray", child_ids=["kid-2"]),
            "alice"
        )

        assert updated.amount == Decimal("120.50")
        assert updated.notes == "Includes x-ray"
        assert updated.description == "Dentist visit"
        assert serialize_expense(db_session, updated).child_ids == ["kid-2"]

    def test_only_payer_may_update(self, db_session, expense_factory):
        expense = expense_factory(paid_by="alice")
        with pytest.raises(PermissionDeniedError):
            update_expense(db_session, expense.id, ExpenseUpdate(notes="mine now"), "bob")

    def test_non_positive_amount_is_rejected(self, db_session, expense_factory):
        expense = expense_factory()
        with pytest.raises(ExpenseValidationError):
            update_expense(db_session, expense.id, ExpenseUpdate.model_construct(amount=Decimal("0")), "alice")

    def test_missing_expense(self, db_session):
        with pytest.raises(NotFoundError):
            update_expense(db_session, "missing", ExpenseUpdate(notes="x"), "alice")

    @pytest.mark.parametrize("field", ["description", "category", "date", "amount", "split_method"])
    def test_required_fields_cannot_be_cleared(self, field):
        with pytest.raises(ValidationError):
            ExpenseUpdate(**{field: None})

    def test_optional_fields_can_be_cleared(self):
        assert ExpenseUpdate(notes=None, receipt_url=None).model_dump(exclude_unset=True) == {
            "notes": None, "receipt_url": None
        }

    def test_null_required_fields_leave_expense_untouched(self, db_session, expense_factory):
        expense = expense_factory()

        with pytest.raises(ExpenseValidationError):
            update_expense(db_session, expense.id,
                           ExpenseUpdate.model_construct(amount=None, description=None), "alice")

        db_session.refresh(expense)
        assert expense.description == "Dentist visit"
        assert expense.amount == Decimal("100.00")

    def test_split_is_locked_while_obligation_exists(self, db_session, expense_factory, mock_producer):
        expense = expense_factory(amount="100")
        transition(db_session, expense, "approve", Actor.user("bob"), producer=mock_producer)

        with pytest.raises(ExpenseValidationError):
            update_expense(db_session, expense.id, ExpenseUpdate(amount=Decimal("300.00")), "alice")
        with pytest.raises(ExpenseValidationError):
            update_expense(db_session, expense.id, ExpenseUpdate(split_method=SplitMethod.none), "alice")

        updated = update_expense(db_session, expense.id, ExpenseUpdate(notes="Receipt attached"), "alice")
        assert updated.notes == "Receipt attached"
        assert updated.amount == Decimal("100.00")

    def test_reopened_expense_can_be_resized(self, db_session, expense_factory, mock_producer):
        expense = expense_factory(amount="100")
        transition(db_session, expense, "approve", Actor.user("bob"), producer=mock_producer)
        transition(db_session, expense, "reopen", Actor.user("alice"), producer=mock_producer)

        update_expense(db_session, expense.id, ExpenseUpdate(amount=Decimal("300.00")), "alice")
        result = transition(db_session, expense, "approve", Actor.user("bob"), producer=mock_producer)

        assert result.obligation.amount == Decimal("150.00")


@pytest.mark.integration
class TestDeleteExpense:

    def test_cascades_and_is_irreversible(self, db_session, expense_factory, mock_producer):
        expense = expense_factory(child_ids=["kid-1", "kid-2"])
        transition(db_session, expense, "approve", Actor.user("bob"), producer=mock_producer)
        expense_id = expense.id

        delete_expense(db_session, expense_id, "alice")

        assert get_expense(db_session, expense_id) is None
        assert db_session.query(ExpenseChild).filter(ExpenseChild.expense_id == expense_id).count() == 0
        assert db_session.query(PaymentObligation).filter(PaymentObligation.expense_id == expense_id).count() == 0
        with pytest.raises(NotFoundError):
            get_expense_or_404(db_session, expense_id)

    def test_audit_trail_survives(self, db_session, expense_factory):
        expense = expense_factory()
        expense_id = expense.id

        delete_expense(db_session, expense_id, "alice")

        assert len(audit_service.get_trail(db_session, expense_id)) == 1

    def test_only_payer_may_delete(self, db_session, expense_factory):
        expense = expense_factory(paid_by="alice")
        with pytest.raises(PermissionDeniedError):
            delete_expense(db_session, expense.id, "bob")
        assert get_expense(db_session, expense.id) is not None


@pytest.mark.integration
class TestSummaries:

    def test_owed_summary_counts_pending_only(self, db_session, expense_factory, mock_producer):
        expense_factory(amount="100")
        expense_factory(amount="50", split_method=SplitMethod.custom, split_amounts={"bob": Decimal("30")})
        approved = expense_factory(amount="400")
        expense_factory(paid_by="bob", amount="60")
        transition(db_session, approved, "approve", Actor.user("bob"), producer=mock_producer)

        summary = get_owed_summary(db_session, "alice")

        assert summary.pending_count == 2
        assert summary.total_owed == Decimal("80.00")

    def test_monthly_summary(self, db_session, expense_factory):
        expense_factory(amount="30", category="food", expense_date=date(2024, 2, 1))
        expense_factory(amount="90", category="medical", expense_date=date(2024, 2, 29))
        expense_factory(amount="500", category="medical", expense_date=date(2024, 3, 1))

        summary = get_monthly_summary(db_session, date(2024, 2, 14))

        assert [(s.name, s.amount, s.percentage) for s in summary] == [
            ("Medical", Decimal("90.00"), Decimal("75.00")),
            ("Food", Decimal("30.00"), Decimal("25.00")),
        ]
