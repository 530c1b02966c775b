import asyncio
import json
from datetime import datetime

import pytest

from app.expenses.application.use_cases import (
    ChangeExpenseStatusCommand,
    ChangeExpenseStatusUseCase,
    GetExpenseUseCase,
    ListExpensesQuery,
    ListExpensesUseCase,
    ResubmitExpenseCommand,
    ResubmitExpenseUseCase,
    SubmitExpenseCommand,
    SubmitExpenseUseCase,
)
from app.expenses.domain.errors import (
    InvalidRequest,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SheetSyncFailed,
)
from app.expenses.domain.models import (
    ExpenseStatus,
    MaterialSummary,
    SiteSummary,
    UserSummary,
)
from tests.fakes import (
    FakeExpenseRepository,
    FakeSheetSink,
    approved,
    failing_sink,
    make_expense,
)

NOW = datetime(2026, 3, 5, 17, 45, 0)
MANAGER = UserSummary(id="mgr-1", name="admin", role="manager")
SUPERVISOR = UserSummary(id="sup-1", name="e1", role="supervisor")
OTHER_SUPERVISOR = UserSummary(id="sup-2", name="e2", role="supervisor")


def run(coro):
    return asyncio.run(coro)


def status_use_case(repo, sink=None):
    ids = iter(f"audit-{n}" for n in range(1, 10))
    return ChangeExpenseStatusUseCase(
        repository=repo,
        sheet_sink=sink or FakeSheetSink(),
        id_generator=lambda: next(ids),
        clock=lambda: NOW,
    )


def repo_with(*expenses):
    repo = FakeExpenseRepository()
    repo.sites["site-1"] = SiteSummary(id="site-1", name="Tower A")
    repo.sites["site-2"] = SiteSummary(id="site-2", name="Villa B")
    repo.materials["mat-1"] = MaterialSummary(id="mat-1", name="Cement", base_price=400.0)
    for expense in expenses:
        repo.expenses[expense.id] = expense
    return repo


# ==================== SUBMIT ====================

def submit_use_case(repo):
    return SubmitExpenseUseCase(
        repository=repo,
        id_generator=lambda: "exp-new",
        clock=lambda: NOW,
    )


def test_submit_computes_total_and_flags_price_change():
    repo = repo_with()
    command = SubmitExpenseCommand(
        site_id="site-1", material_id="mat-1", quantity=12, price_per_unit=415.5
    )

    expense = run(submit_use_case(repo).execute(command, SUPERVISOR))

    assert repo.committed is True
    assert repo.expenses["exp-new"] == expense
    assert expense.status == ExpenseStatus.PENDING
    assert expense.material_name == "Cement"
    assert expense.site_name == "Tower A"
    assert expense.total_amount == 4986.0
    assert expense.is_price_changed is True
    assert expense.date == NOW


def test_submit_at_catalog_price_is_not_flagged():
    repo = repo_with()
    command = SubmitExpenseCommand(
        site_id="site-1", material_id="mat-1", quantity=3, price_per_unit=400
    )

    expense = run(submit_use_case(repo).execute(command, SUPERVISOR))

    assert expense.is_price_changed is False
    assert expense.total_amount == 1200.0


def test_submit_manual_material_requires_name():
    repo = repo_with()
    command = SubmitExpenseCommand(site_id="site-1", quantity=1, price_per_unit=50)

    with pytest.raises(InvalidRequest):
        run(submit_use_case(repo).execute(command, SUPERVISOR))

    manual = SubmitExpenseCommand(
        site_id="site-1", material_name="Binding wire", quantity=2, price_per_unit=75
    )
    expense = run(submit_use_case(repo).execute(manual, SUPERVISOR))
    assert expense.material_id is None
    assert expense.is_price_changed is False


def test_submit_rejects_unknown_site_and_material():
    repo = repo_with()

    with pytest.raises(NotFound):
        run(submit_use_case(repo).execute(
            SubmitExpenseCommand(site_id="missing", material_name="Sand", quantity=1, price_per_unit=1),
            SUPERVISOR,
        ))

    with pytest.raises(NotFound):
        run(submit_use_case(repo).execute(
            SubmitExpenseCommand(site_id="site-1", material_id="missing", quantity=1, price_per_unit=1),
            SUPERVISOR,
        ))


@pytest.mark.parametrize("quantity,price", [(0, 10), (-1, 10), (1, -5)])
def test_submit_rejects_bad_amounts(quantity, price):
    repo = repo_with()
    command = SubmitExpenseCommand(
        site_id="site-1", material_name="Sand", quantity=quantity, price_per_unit=price
    )

    with pytest.raises(InvalidRequest):
        run(submit_use_case(repo).execute(command, SUPERVISOR))
    assert repo.committed is False


def test_submit_denies_unknown_role():
    repo = repo_with()
    command = SubmitExpenseCommand(site_id="site-1", material_name="Sand", quantity=1, price_per_unit=1)

    with pytest.raises(PermissionDenied):
        run(submit_use_case(repo).execute(command, UserSummary(id="x", name="x", role="guest")))


# ==================== LIST / GET ====================

def test_list_scopes_supervisor_to_own_expenses():
    repo = repo_with(
        make_expense(id="exp-1", supervisor_id="sup-1"),
        make_expense(id="exp-2", supervisor_id="sup-2"),
    )
    use_case = ListExpensesUseCase(repo)

    own = run(use_case.execute(ListExpensesQuery(), SUPERVISOR))
    everything = run(use_case.execute(ListExpensesQuery(), MANAGER))

    assert [e.id for e in own] == ["exp-1"]
    assert {e.id for e in everything} == {"exp-1", "exp-2"}
    assert repo.last_filters.supervisor_id is None


def test_list_clamps_limit_and_offset():
    repo = repo_with()
    use_case = ListExpensesUseCase(repo, max_limit=500)

    run(use_case.execute(ListExpensesQuery(limit=10_000, offset=-3), MANAGER))

    assert repo.last_filters.limit == 500
    assert repo.last_filters.offset == 0


def test_list_rejects_unknown_status():
    with pytest.raises(InvalidRequest):
        run(ListExpensesUseCase(repo_with()).execute(ListExpensesQuery(status="Paid"), MANAGER))


def test_get_hides_other_supervisors_expenses():
    repo = repo_with(make_expense(supervisor_id="sup-1"))
    use_case = GetExpenseUseCase(repo)

    assert run(use_case.execute("exp-1", SUPERVISOR)).id == "exp-1"
    assert run(use_case.execute("exp-1", MANAGER)).id == "exp-1"
    with pytest.raises(PermissionDenied):
        run(use_case.execute("exp-1", OTHER_SUPERVISOR))
    with pytest.raises(NotFound):
        run(use_case.execute("nope", MANAGER))


# ==================== APPROVAL ====================

def test_approve_appends_to_sheet_then_commits():
    repo = repo_with(make_expense())
    sink = FakeSheetSink()

    result = run(status_use_case(repo, sink).execute(
        ChangeExpenseStatusCommand(expense_id="exp-1", status="Approved"), MANAGER
    ))

    assert result.status == ExpenseStatus.APPROVED
    assert result.approved_by == "admin"
    assert result.approved_at == NOW
    assert repo.committed is True
    assert repo.expenses["exp-1"].status == ExpenseStatus.APPROVED
    assert repo.locked == ["exp-1"]

    site_name, values = sink.rows["exp-1"]
    assert site_name == "Tower A"
    assert values[0] == "2026-03-02"
    assert values[3] == "Cement"
    assert values[6] == 4000.0
    assert values[9] == "admin"
    assert values[10] == "2026-03-05 17:45:00"
    assert values[-1] == "exp-1"

    assert [entry.action for entry in repo.audit_entries] == ["approve"]
    assert repo.audit_entries[0].entity_id == "exp-1"


def test_approve_leaves_expense_pending_when_sheet_fails():
    repo = repo_with(make_expense())
    sink = failing_sink()

    with pytest.raises(SheetSyncFailed) as exc_info:
        run(status_use_case(repo, sink).execute(
            ChangeExpenseStatusCommand(expense_id="exp-1", status="Approved"), MANAGER
        ))

    assert "Approval aborted" in exc_info.value.message
    assert repo.expenses["exp-1"].status == ExpenseStatus.PENDING
    assert repo.expenses["exp-1"].approved_by is None
    assert repo.committed is False
    assert repo.audit_entries == []
    assert repo.rollbacks == 1
    assert sink.rows == {}


def test_approve_retry_after_failed_commit_does_not_duplicate_sheet_row():
    repo = repo_with(make_expense())
    sink = FakeSheetSink()
    repo.commit_error = RuntimeError("connection reset")

    with pytest.raises(RuntimeError):
        run(status_use_case(repo, sink).execute(
            ChangeExpenseStatusCommand(expense_id="exp-1", status="Approved"), MANAGER
        ))

    assert repo.expenses["exp-1"].status == ExpenseStatus.PENDING
    assert repo.rollbacks == 1
    assert list(sink.rows) == ["exp-1"]

    repo.commit_error = None
    result = run(status_use_case(repo, sink).execute(
        ChangeExpenseStatusCommand(expense_id="exp-1", status="Approved"), MANAGER
    ))

    assert result.status == ExpenseStatus.APPROVED
    assert repo.expenses["exp-1"].status == ExpenseStatus.APPROVED
    assert len(sink.calls) == 2
    assert len(sink.rows) == 1


def test_approved_expense_is_immutable():
    repo = repo_with(approved(make_expense()))
    sink = FakeSheetSink()

    for status in ("Approved", "Rejected", "Pending"):
        with pytest.raises(InvalidTransition):
            run(status_use_case(repo, sink).execute(
                ChangeExpenseStatusCommand(expense_id="exp-1", status=status, rejection_reason="late"),
                MANAGER,
            ))

    assert sink.calls == []
    assert repo.committed is False


def test_only_manager_changes_status():
    repo = repo_with(make_expense())

    with pytest.raises(PermissionDenied):
        run(status_use_case(repo).execute(
            ChangeExpenseStatusCommand(expense_id="exp-1", status="Approved"), SUPERVISOR
        ))


def test_change_status_of_missing_expense():
    with pytest.raises(NotFound):
        run(status_use_case(repo_with()).execute(
            ChangeExpenseStatusCommand(expense_id="missing", status="Approved"), MANAGER
        ))


def test_status_must_be_approved_or_rejected():
    repo = repo_with(make_expense())

    with pytest.raises(InvalidRequest):
        run(status_use_case(repo).execute(
            ChangeExpenseStatusCommand(expense_id="exp-1", status="Pending"), MANAGER
        ))


# ==================== REJECTION ====================

@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason(reason):
    repo = repo_with(make_expense())

    with pytest.raises(InvalidRequest):
        run(status_use_case(repo).execute(
            ChangeExpenseStatusCommand(expense_id="exp-1", status="Rejected", rejection_reason=reason),
            MANAGER,
        ))
    assert repo.expenses["exp-1"].status == ExpenseStatus.PENDING


def test_reject_stores_reason_without_touching_sheet():
    repo = repo_with(make_expense())
    sink = FakeSheetSink()

    result = run(status_use_case(repo, sink).execute(
        ChangeExpenseStatusCommand(
            expense_id="exp-1", status="Rejected", rejection_reason="  Bill missing "
        ),
        MANAGER,
    ))

    assert result.status == ExpenseStatus.REJECTED
    assert result.rejection_reason == "Bill missing"
    assert repo.expenses["exp-1"].rejection_reason == "Bill missing"
    assert sink.calls == []
    assert [entry.action for entry in repo.audit_entries] == ["reject"]


def test_rejected_expense_cannot_be_approved_before_resubmission():
    repo = repo_with(make_expense(status=ExpenseStatus.REJECTED, rejection_reason="wrong qty"))
    sink = FakeSheetSink()

    with pytest.raises(InvalidTransition):
        run(status_use_case(repo, sink).execute(
            ChangeExpenseStatusCommand(expense_id="exp-1", status="Approved"), MANAGER
        ))
    assert sink.calls == []


# ==================== RESUBMISSION ====================

def resubmit_use_case(repo):
    ids = iter(f"resubmit-{n}" for n in range(1, 10))
    return ResubmitExpenseUseCase(
        repository=repo,
        id_generator=lambda: next(ids),
        clock=lambda: NOW,
    )


def test_resubmit_resets_to_pending_and_recomputes():
    repo = repo_with(make_expense(status=ExpenseStatus.REJECTED, rejection_reason="wrong qty"))

    result = run(resubmit_use_case(repo).execute(
        ResubmitExpenseCommand(expense_id="exp-1", quantity=8, price_per_unit=410),
        SUPERVISOR,
    ))

    assert result.status == ExpenseStatus.PENDING
    assert result.rejection_reason == ""
    assert result.total_amount == 3280.0
    assert result.is_price_changed is True
    assert result.bill_number == "B-17"
    assert result.updated_at == NOW
    assert repo.committed is True
    assert repo.expenses["exp-1"] == result


def test_resubmit_writes_audit_entry():
    repo = repo_with(make_expense(status=ExpenseStatus.REJECTED, rejection_reason="wrong qty"))

    run(resubmit_use_case(repo).execute(
        ResubmitExpenseCommand(expense_id="exp-1", quantity=8), SUPERVISOR
    ))

    assert len(repo.audit_entries) == 1
    entry = repo.audit_entries[0]
    assert entry.id == "resubmit-1"
    assert entry.action == "resubmit"
    assert entry.entity_id == "exp-1"
    assert entry.user_id == "sup-1"
    assert entry.timestamp == NOW
    assert json.loads(entry.changes) == {"status": "Pending"}


def test_resubmit_audit_entry_is_dropped_when_refused():
    repo = repo_with(make_expense(status=ExpenseStatus.PENDING))

    with pytest.raises(InvalidRequest):
        run(resubmit_use_case(repo).execute(
            ResubmitExpenseCommand(expense_id="exp-1", quantity=8), SUPERVISOR
        ))
    assert repo.audit_entries == []


def test_resubmit_can_clear_bill_fields():
    repo = repo_with(make_expense(status=ExpenseStatus.REJECTED, rejection_reason="wrong bill"))

    result = run(resubmit_use_case(repo).execute(
        ResubmitExpenseCommand(expense_id="exp-1", bill_number="", bill_name="Raju Hardware"),
        SUPERVISOR,
    ))

    assert result.bill_number is None
    assert result.bill_name == "Raju Hardware"
    assert repo.expenses["exp-1"].bill_number is None


def test_resubmit_can_move_expense_to_another_site():
    repo = repo_with(make_expense(status=ExpenseStatus.REJECTED, rejection_reason="wrong site"))

    result = run(resubmit_use_case(repo).execute(
        ResubmitExpenseCommand(expense_id="exp-1", site_id="site-2"), SUPERVISOR
    ))

    assert result.site_id == "site-2"
    assert result.site_name == "Villa B"
    assert result.is_price_changed is False


def test_resubmit_only_by_submitter():
    repo = repo_with(make_expense(status=ExpenseStatus.REJECTED, rejection_reason="x"))

    with pytest.raises(PermissionDenied):
        run(resubmit_use_case(repo).execute(
            ResubmitExpenseCommand(expense_id="exp-1", quantity=2), OTHER_SUPERVISOR
        ))
    with pytest.raises(PermissionDenied):
        run(resubmit_use_case(repo).execute(
            ResubmitExpenseCommand(expense_id="exp-1", quantity=2), MANAGER
        ))


@pytest.mark.parametrize("status", [ExpenseStatus.PENDING, ExpenseStatus.APPROVED])
def test_resubmit_only_rejected_expenses(status):
    repo = repo_with(make_expense(status=status))

    with pytest.raises(InvalidRequest):
        run(resubmit_use_case(repo).execute(
            ResubmitExpenseCommand(expense_id="exp-1", quantity=2), SUPERVISOR
        ))
    assert repo.committed is False


def test_resubmitted_expense_can_then_be_approved():
    repo = repo_with(make_expense(status=ExpenseStatus.REJECTED, rejection_reason="x"))
    sink = FakeSheetSink()

    run(resubmit_use_case(repo).execute(
        ResubmitExpenseCommand(expense_id="exp-1", quantity=5), SUPERVISOR
    ))
    result = run(status_use_case(repo, sink).execute(
        ChangeExpenseStatusCommand(expense_id="exp-1", status="Approved"), MANAGER
    ))

    assert result.status == ExpenseStatus.APPROVED
    assert sink.rows["exp-1"][1][6] == 2000.0
