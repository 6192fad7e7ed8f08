"""Chart of accounts: structural rules and the account service.

The validator enforces what an account may look like and how it may change:

* the subtype must be allowed for the account type;
* the normal balance defaults from the type;
* the parent must exist, share the type, and not introduce a cycle;
* system and protected accounts keep their type and subtype;
* an account in use keeps its type and subtype and stays active.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Mapping
from typing import Any

from ledger.context import CallerIdentity
from ledger.errors import ConflictError, NotFoundError, ValidationError
from ledger.models.gl import AccountSubtype, AccountType, NormalBalance
from ledger.services.audit_service import AuditSink
from ledger.services.idempotency import IdempotencyMediator, IdempotentResult
from ledger.stores.base import AccountRecord, AccountStore

logger = logging.getLogger(__name__)


ALLOWED_SUBTYPES: dict[AccountType, frozenset[AccountSubtype]] = {
    AccountType.ASSET: frozenset({
        AccountSubtype.BANK,
        AccountSubtype.CASH,
        AccountSubtype.AR,
        AccountSubtype.VAT_RECEIVABLE,
        AccountSubtype.VENDOR_PREPAYMENTS,
    }),
    AccountType.LIABILITY: frozenset({
        AccountSubtype.AP,
        AccountSubtype.VAT_PAYABLE,
        AccountSubtype.CUSTOMER_ADVANCES,
    }),
    AccountType.EQUITY: frozenset({AccountSubtype.EQUITY}),
    AccountType.INCOME: frozenset({AccountSubtype.SALES}),
    AccountType.EXPENSE: frozenset({AccountSubtype.EXPENSE}),
}

# Control accounts other documents post to automatically
PROTECTED_SUBTYPES: frozenset[AccountSubtype] = frozenset({
    AccountSubtype.AR,
    AccountSubtype.AP,
    AccountSubtype.VAT_RECEIVABLE,
    AccountSubtype.VAT_PAYABLE,
})

RECONCILABLE_SUBTYPES: frozenset[AccountSubtype] = frozenset({
    AccountSubtype.BANK,
    AccountSubtype.CASH,
})

NORMAL_BALANCE_BY_TYPE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.INCOME: NormalBalance.CREDIT,
}


# ---------------------------------------------------------------------------
# Pure rules
# ---------------------------------------------------------------------------


def parse_account_type(value: str | AccountType) -> AccountType:
    try:
        return AccountType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown account type {value!r}",
            hint=f"Use one of: {', '.join(t.value for t in AccountType)}.",
        ) from None


def validate_subtype(
    account_type: str | AccountType, subtype: str | AccountSubtype | None
) -> str | None:
    """Return the subtype if it is allowed for *account_type*."""
    if subtype is None:
        return None
    account_type = parse_account_type(account_type)
    try:
        parsed = AccountSubtype(subtype)
    except ValueError:
        raise ValidationError(f"Unknown account subtype {subtype!r}") from None
    if parsed not in ALLOWED_SUBTYPES[account_type]:
        raise ValidationError(
            "Invalid subtype for account type",
            hint="Choose a subtype compatible with the account type.",
            details={"type": account_type.value, "subtype": parsed.value},
        )
    return parsed.value


def resolve_normal_balance(
    account_type: str | AccountType, override: str | NormalBalance | None = None
) -> str:
    if override is not None:
        try:
            return NormalBalance(override).value
        except ValueError:
            raise ValidationError(f"Unknown normal balance {override!r}") from None
    return NORMAL_BALANCE_BY_TYPE[parse_account_type(account_type)].value


def is_protected(account: AccountRecord) -> bool:
    return account.is_system or account.subtype in {s.value for s in PROTECTED_SUBTYPES}


def default_reconcilable(subtype: str | None) -> bool:
    return subtype in {s.value for s in RECONCILABLE_SUBTYPES}


# ---------------------------------------------------------------------------
# Store-backed rules
# ---------------------------------------------------------------------------


class ChartOfAccountsValidator:
    def __init__(self, accounts: AccountStore) -> None:
        self.accounts = accounts

    async def assert_no_parent_cycle(
        self,
        org_id: uuid.UUID,
        account_id: uuid.UUID | None,
        proposed_parent_id: uuid.UUID | None,
    ) -> None:
        """Walk the ancestor chain of *proposed_parent_id*.

        Fails if it reaches *account_id* or revisits any node.  The walk is
        bounded by the visited set, so a cycle already in storage cannot
        make it loop.
        """
        if proposed_parent_id is None:
            return
        if account_id is not None and proposed_parent_id == account_id:
            raise ValidationError("Account cannot be its own parent")

        visited: set[uuid.UUID] = set()
        current_id: uuid.UUID | None = proposed_parent_id
        while current_id is not None:
            if account_id is not None and current_id == account_id:
                raise ValidationError(
                    "Parent account would create a cycle",
                    hint="Choose a parent that is not a descendant of this account.",
                )
            if current_id in visited:
                raise ValidationError("Account hierarchy already contains a cycle")
            visited.add(current_id)
            node = await self.accounts.get(org_id, current_id)
            if node is None:
                if current_id == proposed_parent_id:
                    raise NotFoundError("Parent account not found")
                break
            current_id = node.parent_account_id

    async def validate_parent(
        self,
        org_id: uuid.UUID,
        account_id: uuid.UUID | None,
        parent_id: uuid.UUID | None,
        account_type: str,
    ) -> None:
        if parent_id is None:
            return
        parent = await self.accounts.get(org_id, parent_id)
        if parent is None:
            raise NotFoundError("Parent account not found")
        if parent.type != account_type:
            raise ValidationError(
                "Parent account must have the same type",
                details={"type": account_type, "parent_type": parent.type},
            )
        await self.assert_no_parent_cycle(org_id, account_id, parent_id)

    async def reference_counts(
        self, org_id: uuid.UUID, account_id: uuid.UUID
    ) -> dict[str, int]:
        counts = await self.accounts.count_references(org_id, account_id)
        return {name: count for name, count in counts.items() if count}

    async def is_in_use(self, org_id: uuid.UUID, account_id: uuid.UUID) -> bool:
        return bool(await self.reference_counts(org_id, account_id))

    async def assert_code_available(
        self, org_id: uuid.UUID, code: str, exclude_id: uuid.UUID | None = None
    ) -> None:
        existing = await self.accounts.get_by_code(org_id, code)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError("Account code already exists", details={"code": code})

    async def assert_mutable(
        self, account: AccountRecord, changes: Mapping[str, Any]
    ) -> None:
        """Reject type/subtype changes or deactivation the account's state forbids.

        *changes* holds only the fields the caller actually sent.
        """
        type_change = (
            changes.get("type") is not None and changes["type"] != account.type
        )
        subtype_change = "subtype" in changes and changes["subtype"] != account.subtype
        deactivation = changes.get("is_active") is False and account.is_active

        if is_protected(account) and (type_change or subtype_change or deactivation):
            label = "System" if account.is_system else "Protected"
            if deactivation and not (type_change or subtype_change):
                message = f"{label} account cannot be deactivated"
            else:
                message = f"{label} account type cannot be changed"
            raise ConflictError(
                message,
                hint="Create a new account instead.",
                details={"account_id": str(account.id), "subtype": account.subtype},
            )

        if not (type_change or subtype_change or deactivation):
            return

        references = await self.reference_counts(account.org_id, account.id)
        if references:
            if type_change or subtype_change:
                message = "Account in use cannot change type/subtype"
            else:
                message = "Account in use cannot be deactivated"
            raise ConflictError(message, details={"references": references})

        if type_change:
            children = await self.accounts.count_children(account.org_id, account.id)
            if children:
                raise ConflictError(
                    "Account with child accounts cannot change type",
                    details={"children": children},
                )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AccountService:
    """Reads and writes chart-of-accounts entries for one organization."""

    def __init__(
        self,
        accounts: AccountStore,
        mediator: IdempotencyMediator,
        audit: AuditSink,
    ) -> None:
        self.accounts = accounts
        self.validator = ChartOfAccountsValidator(accounts)
        self.mediator = mediator
        self.audit = audit

    async def list_accounts(self, identity: CallerIdentity) -> list[AccountRecord]:
        return await self.accounts.list_accounts(identity.require_org())

    async def get_account(
        self, identity: CallerIdentity, account_id: uuid.UUID
    ) -> AccountRecord:
        account = await self.accounts.get(identity.require_org(), account_id)
        if account is None:
            raise NotFoundError("Account not found")
        return account

    async def create_account(
        self,
        identity: CallerIdentity,
        data: Mapping[str, Any],
        idempotency_key: str | None = None,
    ) -> IdempotentResult:
        org_id = identity.require_org()

        async def execute() -> dict[str, Any]:
            account = await self._create(identity, org_id, data)
            return account.to_dict()

        return await self.mediator.run(
            org_id,
            idempotency_key,
            "accounts.create",
            identity.user_id,
            dict(data),
            execute,
            status_code=201,
        )

    async def _create(
        self, identity: CallerIdentity, org_id: uuid.UUID, data: Mapping[str, Any]
    ) -> AccountRecord:
        code = str(data["code"]).strip()
        name = str(data["name"]).strip()
        if not code:
            raise ValidationError("Account code is required")
        if not name:
            raise ValidationError("Account name is required")

        account_type = parse_account_type(data["type"]).value
        subtype = validate_subtype(account_type, data.get("subtype"))
        normal_balance = resolve_normal_balance(account_type, data.get("normal_balance"))
        parent_id = data.get("parent_account_id")

        await self.validator.assert_code_available(org_id, code)
        await self.validator.validate_parent(org_id, None, parent_id, account_type)

        is_reconcilable = data.get("is_reconcilable")
        if is_reconcilable is None:
            is_reconcilable = default_reconcilable(subtype)

        account = await self.accounts.insert(AccountRecord(
            id=uuid.uuid4(),
            org_id=org_id,
            code=code,
            name=name,
            type=account_type,
            subtype=subtype,
            normal_balance=normal_balance,
            parent_account_id=parent_id,
            is_system=False,
            is_reconcilable=bool(is_reconcilable),
            is_active=data.get("is_active", True),
            tax_code_id=data.get("tax_code_id"),
            description=data.get("description"),
        ))
        await self.audit.log(
            org_id, identity.user_id, "account", str(account.id), "create",
            after=account.to_dict(),
        )
        logger.info(f"Account {account.code} created in org {org_id}")
        return account

    async def update_account(
        self,
        identity: CallerIdentity,
        account_id: uuid.UUID,
        changes: Mapping[str, Any],
    ) -> AccountRecord:
        """Apply a partial update; *changes* holds only the fields sent."""
        org_id = identity.require_org()
        account = await self.get_account(identity, account_id)

        if changes.get("type") is not None:
            changes = {**changes, "type": parse_account_type(changes["type"]).value}

        await self.validator.assert_mutable(account, changes)

        updates: dict[str, Any] = {}

        if changes.get("code") is not None:
            code = str(changes["code"]).strip()
            if not code:
                raise ValidationError("Account code is required")
            if code != account.code:
                await self.validator.assert_code_available(org_id, code, exclude_id=account.id)
            updates["code"] = code

        if changes.get("name") is not None:
            name = str(changes["name"]).strip()
            if not name:
                raise ValidationError("Account name is required")
            updates["name"] = name

        new_type = changes.get("type") or account.type
        type_changed = new_type != account.type
        new_subtype = changes["subtype"] if "subtype" in changes else account.subtype
        updates["type"] = new_type
        updates["subtype"] = validate_subtype(new_type, new_subtype)

        if changes.get("normal_balance") is not None:
            updates["normal_balance"] = resolve_normal_balance(new_type, changes["normal_balance"])
        elif type_changed:
            updates["normal_balance"] = resolve_normal_balance(new_type)

        new_parent = (
            changes["parent_account_id"]
            if "parent_account_id" in changes
            else account.parent_account_id
        )
        if "parent_account_id" in changes or type_changed:
            await self.validator.validate_parent(org_id, account.id, new_parent, new_type)
        updates["parent_account_id"] = new_parent

        if changes.get("is_reconcilable") is not None:
            updates["is_reconcilable"] = bool(changes["is_reconcilable"])
        elif "subtype" in changes:
            updates["is_reconcilable"] = default_reconcilable(updates["subtype"])

        for field in ("is_active", "tax_code_id", "description"):
            if field in changes and not (field == "is_active" and changes[field] is None):
                updates[field] = changes[field]

        updated = await self.accounts.update(dataclasses.replace(account, **updates))
        action = "deactivate" if account.is_active and not updated.is_active else "update"
        await self.audit.log(
            org_id, identity.user_id, "account", str(account.id), action,
            before=account.to_dict(), after=updated.to_dict(),
        )
        return updated
