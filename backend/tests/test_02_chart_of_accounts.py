"""
Tests 16-45: Chart of accounts rules

Subtype/type compatibility, normal-balance defaults, parent cycle detection,
mutation guards for protected and in-use accounts, and the account service.
"""
import uuid

import pytest

from ledger.context import CallerIdentity
from ledger.errors import ConflictError, NotFoundError, ValidationError
from ledger.services.chart_of_accounts import (
    ChartOfAccountsValidator,
    resolve_normal_balance,
    validate_subtype,
)


def identity_for(world):
    return CallerIdentity(user_id=uuid.uuid4(), org_id=world.org_id)


# ===================================================================
# Subtype and normal balance
# ===================================================================
class TestSubtypeRules:

    @pytest.mark.parametrize("account_type,subtype", [
        ("ASSET", "BANK"),
        ("ASSET", "CASH"),
        ("ASSET", "AR"),
        ("ASSET", "VAT_RECEIVABLE"),
        ("ASSET", "VENDOR_PREPAYMENTS"),
        ("LIABILITY", "AP"),
        ("LIABILITY", "VAT_PAYABLE"),
        ("LIABILITY", "CUSTOMER_ADVANCES"),
        ("EQUITY", "EQUITY"),
        ("INCOME", "SALES"),
        ("EXPENSE", "EXPENSE"),
    ])
    def test_16_allowed_pairs(self, account_type, subtype):
        """Every subtype listed for a type is accepted."""
        assert validate_subtype(account_type, subtype) == subtype

    @pytest.mark.parametrize("account_type,subtype", [
        ("ASSET", "AP"),
        ("LIABILITY", "BANK"),
        ("INCOME", "EXPENSE"),
        ("EXPENSE", "SALES"),
        ("EQUITY", "AR"),
    ])
    def test_17_disallowed_pairs(self, account_type, subtype):
        """A subtype from another type is rejected."""
        with pytest.raises(ValidationError) as exc:
            validate_subtype(account_type, subtype)
        assert exc.value.message == "Invalid subtype for account type"

    def test_18_missing_subtype_always_valid(self):
        for account_type in ("ASSET", "LIABILITY", "EQUITY", "INCOME", "EXPENSE"):
            assert validate_subtype(account_type, None) is None

    def test_19_unknown_subtype_rejected(self):
        with pytest.raises(ValidationError):
            validate_subtype("ASSET", "PETTY_CASH")

    def test_20_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            validate_subtype("REVENUE", "SALES")

    @pytest.mark.parametrize("account_type,expected", [
        ("ASSET", "DEBIT"),
        ("EXPENSE", "DEBIT"),
        ("LIABILITY", "CREDIT"),
        ("EQUITY", "CREDIT"),
        ("INCOME", "CREDIT"),
    ])
    def test_21_default_normal_balance(self, account_type, expected):
        assert resolve_normal_balance(account_type) == expected

    def test_22_normal_balance_override_wins(self):
        """A contra-asset may carry a credit normal balance."""
        assert resolve_normal_balance("ASSET", "CREDIT") == "CREDIT"


# ===================================================================
# Parent cycle detection
# ===================================================================
class TestParentCycles:

    async def test_23_self_parent_rejected(self, world):
        a = world.add_account("1000", "ASSET")
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ValidationError):
            await validator.assert_no_parent_cycle(world.org_id, a.id, a.id)

    async def test_24_descendant_as_parent_rejected(self, world):
        """A → B → C: making C the parent of A would close a loop."""
        a = world.add_account("1000", "ASSET")
        b = world.add_account("1010", "ASSET", parent_account_id=a.id)
        c = world.add_account("1020", "ASSET", parent_account_id=b.id)
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ValidationError) as exc:
            await validator.assert_no_parent_cycle(world.org_id, a.id, c.id)
        assert "cycle" in exc.value.message

    async def test_25_valid_reparent_allowed(self, world):
        a = world.add_account("1000", "ASSET")
        b = world.add_account("1010", "ASSET", parent_account_id=a.id)
        d = world.add_account("1030", "ASSET")
        validator = ChartOfAccountsValidator(world.accounts)
        await validator.assert_no_parent_cycle(world.org_id, d.id, b.id)

    async def test_26_existing_cycle_terminates(self, world):
        """A cycle already in storage is reported, not looped over forever."""
        x_id, y_id = uuid.uuid4(), uuid.uuid4()
        world.add_account("1100", "ASSET", id=x_id, parent_account_id=y_id)
        world.add_account("1101", "ASSET", id=y_id, parent_account_id=x_id)
        new = world.add_account("1200", "ASSET")
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ValidationError):
            await validator.assert_no_parent_cycle(world.org_id, new.id, x_id)
        assert world.accounts.get_calls <= 3

    async def test_27_missing_parent_is_not_found(self, world):
        a = world.add_account("1000", "ASSET")
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(NotFoundError):
            await validator.assert_no_parent_cycle(world.org_id, a.id, uuid.uuid4())

    async def test_28_parent_in_other_org_is_not_found(self, world):
        foreign = world.add_account("9000", "ASSET", org_id=uuid.uuid4())
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(NotFoundError):
            await validator.validate_parent(world.org_id, None, foreign.id, "ASSET")

    async def test_29_parent_must_share_type(self, world):
        parent = world.add_account("4000", "INCOME")
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ValidationError) as exc:
            await validator.validate_parent(world.org_id, None, parent.id, "EXPENSE")
        assert exc.value.message == "Parent account must have the same type"


# ===================================================================
# Mutation guards
# ===================================================================
class TestMutationGuards:

    async def test_30_protected_subtype_cannot_change_type(self, world):
        """An AR account keeps its type and subtype."""
        ar = world.add_account("1100", "ASSET", subtype="AR")
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ConflictError):
            await validator.assert_mutable(ar, {"subtype": None})
        with pytest.raises(ConflictError):
            await validator.assert_mutable(ar, {"type": "EXPENSE"})

    async def test_31_system_account_cannot_change_type(self, world):
        cash = world.add_account("1000", "ASSET", subtype="CASH", is_system=True)
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ConflictError) as exc:
            await validator.assert_mutable(cash, {"type": "EXPENSE"})
        assert exc.value.message == "System account type cannot be changed"

    async def test_32_protected_account_cannot_be_deactivated(self, world):
        ap = world.add_account("2000", "LIABILITY", subtype="AP")
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ConflictError):
            await validator.assert_mutable(ap, {"is_active": False})

    async def test_33_in_use_blocks_type_change(self, world):
        acct = world.add_account("5200", "EXPENSE")
        world.accounts.references[acct.id] = {"gl_lines": 2}
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ConflictError) as exc:
            await validator.assert_mutable(acct, {"type": "ASSET"})
        assert exc.value.message == "Account in use cannot change type/subtype"
        assert exc.value.details == {"references": {"gl_lines": 2}}

    async def test_34_in_use_blocks_deactivation(self, world):
        acct = world.add_account("5200", "EXPENSE")
        world.accounts.references[acct.id] = {"bank_accounts": 1}
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ConflictError) as exc:
            await validator.assert_mutable(acct, {"is_active": False})
        assert exc.value.message == "Account in use cannot be deactivated"

    async def test_35_rename_allowed_when_in_use(self, world):
        """Name and description changes never touch the in-use rule."""
        acct = world.add_account("5200", "EXPENSE")
        world.accounts.references[acct.id] = {"gl_lines": 5}
        validator = ChartOfAccountsValidator(world.accounts)
        await validator.assert_mutable(acct, {"name": "Travel", "description": "Trips"})

    async def test_36_unused_account_may_change_type(self, world):
        acct = world.add_account("5200", "EXPENSE")
        world.accounts.references[acct.id] = {"gl_lines": 0, "journal_lines": 0}
        validator = ChartOfAccountsValidator(world.accounts)
        await validator.assert_mutable(acct, {"type": "ASSET"})
        assert not await validator.is_in_use(world.org_id, acct.id)

    async def test_37_account_with_children_keeps_type(self, world):
        parent = world.add_account("5000", "EXPENSE")
        world.add_account("5001", "EXPENSE", parent_account_id=parent.id)
        validator = ChartOfAccountsValidator(world.accounts)
        with pytest.raises(ConflictError):
            await validator.assert_mutable(parent, {"type": "ASSET"})

    async def test_38_same_type_is_not_a_change(self, world):
        ar = world.add_account("1100", "ASSET", subtype="AR")
        validator = ChartOfAccountsValidator(world.accounts)
        await validator.assert_mutable(ar, {"type": "ASSET", "subtype": "AR", "name": "Debtors"})


# ===================================================================
# Account service
# ===================================================================
class TestAccountService:

    async def test_39_create_defaults(self, world):
        """BANK accounts are reconcilable and debit-normal by default."""
        result = await world.core.accounts.create_account(
            identity_for(world), {"code": "1050", "name": "Payroll Bank", "type": "ASSET", "subtype": "BANK"}
        )
        assert result.status_code == 201
        body = result.response
        assert body["normal_balance"] == "DEBIT"
        assert body["is_reconcilable"] is True
        assert body["is_system"] is False
        assert world.audit.entries[-1]["action"] == "create"

    async def test_40_duplicate_code_conflicts(self, world):
        world.add_account("1000", "ASSET")
        with pytest.raises(ConflictError) as exc:
            await world.core.accounts.create_account(
                identity_for(world), {"code": "1000", "name": "Again", "type": "ASSET"}
            )
        assert exc.value.message == "Account code already exists"

    async def test_41_create_is_idempotent(self, world):
        """Same key and payload returns the first response without a second insert."""
        ident = identity_for(world)
        data = {"code": "6000", "name": "Rent", "type": "EXPENSE"}
        first = await world.core.accounts.create_account(ident, data, "key-1")
        second = await world.core.accounts.create_account(ident, dict(data), "key-1")
        assert second.replayed is True
        assert second.response == first.response
        assert len([r for r in world.accounts.rows.values() if r.code == "6000"]) == 1

    async def test_42_update_reparent_cycle_rejected(self, world):
        ident = identity_for(world)
        a = world.add_account("5000", "EXPENSE")
        b = world.add_account("5010", "EXPENSE", parent_account_id=a.id)
        with pytest.raises(ValidationError):
            await world.core.accounts.update_account(ident, a.id, {"parent_account_id": b.id})
        assert world.accounts.rows[a.id].parent_account_id is None

    async def test_43_update_type_resets_normal_balance(self, world):
        ident = identity_for(world)
        acct = world.add_account("5300", "EXPENSE")
        updated = await world.core.accounts.update_account(ident, acct.id, {"type": "LIABILITY"})
        assert updated.type == "LIABILITY"
        assert updated.normal_balance == "CREDIT"

    async def test_44_update_type_with_incompatible_subtype_rejected(self, world):
        ident = identity_for(world)
        acct = world.add_account("5300", "EXPENSE", subtype="EXPENSE")
        with pytest.raises(ValidationError):
            await world.core.accounts.update_account(ident, acct.id, {"type": "ASSET"})

    async def test_45_code_change_to_taken_code_conflicts(self, world):
        ident = identity_for(world)
        world.add_account("1000", "ASSET")
        other = world.add_account("1001", "ASSET")
        with pytest.raises(ConflictError):
            await world.core.accounts.update_account(ident, other.id, {"code": "1000"})
