"""Prospect-to-account conversion wizard.

The wizard moves through form -> duplicates (only when candidates exist) ->
confirmation -> success, and can be cancelled from any step before success.
Each step is its own frozen dataclass carrying only the data valid for that
step, and ``transition`` is the single function that moves between them.
``ConversionWizard`` drives the transitions and performs the service calls.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Literal, Union

from pipeline_crm.core.exceptions import InvalidTransitionError
from pipeline_crm.core.session import Session
from pipeline_crm.models.account import COMPANY_TYPES, DEFAULT_COMPANY_TYPE
from pipeline_crm.models.conversion import AccountDraft, DuplicateMatch
from pipeline_crm.models.prospect import ProspectStatus
from pipeline_crm.services.account_service import AccountService
from pipeline_crm.services.prospect_service import ProspectService

logger = logging.getLogger(__name__)

Decision = Literal["link", "create_new"]

_COMPANY_TYPE_LOOKUP: dict[str, str] = {t.lower(): t for t in COMPANY_TYPES}

ALREADY_CONVERTED_MESSAGE = "This prospect has already been converted."


def map_company_type(value: str | None) -> str:
    """Map a free-form prospect company type onto an account company type."""
    if not value:
        return DEFAULT_COMPANY_TYPE
    return _COMPANY_TYPE_LOOKUP.get(value.strip().lower(), DEFAULT_COMPANY_TYPE)


def seed_account_draft(prospect: Mapping[str, Any]) -> AccountDraft:
    """Pre-fill the account form from the prospect's research data."""
    return AccountDraft(
        name=prospect.get("name") or "",
        company_type=map_company_type(prospect.get("company_type")),
        phone=prospect.get("phone"),
        website=prospect.get("website"),
        domain=prospect.get("domain"),
        address=prospect.get("address"),
        city=prospect.get("city"),
        state=prospect.get("state"),
        zip_code=prospect.get("zip_code"),
        notes=prospect.get("notes"),
    )


# States


@dataclass(frozen=True)
class FormState:
    """Editing the account fields. ``refused`` marks an already-converted prospect."""

    step: ClassVar[str] = "form"

    prospect: Mapping[str, Any]
    account_data: AccountDraft
    error: str | None = None
    refused: bool = False


@dataclass(frozen=True)
class DuplicatesState:
    """Choosing between linking to a candidate and creating a new account."""

    step: ClassVar[str] = "duplicates"

    prospect: Mapping[str, Any]
    account_data: AccountDraft
    candidates: tuple[DuplicateMatch, ...]
    decision: Decision | None = None
    selected_account_id: str | None = None

    @property
    def can_continue(self) -> bool:
        """A definite choice exists; linking also needs a selected candidate."""
        if self.decision == "create_new":
            return True
        return self.decision == "link" and self.selected_account_id is not None


@dataclass(frozen=True)
class ConfirmationState:
    """Read-only review of the decision before converting."""

    step: ClassVar[str] = "confirmation"

    prospect: Mapping[str, Any]
    account_data: AccountDraft
    candidates: tuple[DuplicateMatch, ...]
    create_new: bool
    selected_account_id: str | None = None
    error: str | None = None

    @property
    def selected_candidate(self) -> DuplicateMatch | None:
        return next(
            (c for c in self.candidates if c.account_id == self.selected_account_id), None
        )


@dataclass(frozen=True)
class SuccessState:
    """Conversion done."""

    step: ClassVar[str] = "success"

    prospect: Mapping[str, Any]
    account_id: str | None
    message: str | None = None


@dataclass(frozen=True)
class CancelledState:
    """Wizard closed; nothing is kept."""

    step: ClassVar[str] = "cancelled"


WizardState = Union[FormState, DuplicatesState, ConfirmationState, SuccessState, CancelledState]


# Events


@dataclass(frozen=True)
class SubmitForm:
    account_data: AccountDraft


@dataclass(frozen=True)
class DuplicatesFound:
    candidates: tuple[DuplicateMatch, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DuplicateSearchFailed:
    error: str


@dataclass(frozen=True)
class SelectCandidate:
    account_id: str


@dataclass(frozen=True)
class ChooseLink:
    pass


@dataclass(frozen=True)
class ChooseCreateNew:
    pass


@dataclass(frozen=True)
class ContinueFromDuplicates:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class ConversionSucceeded:
    account_id: str | None
    message: str | None = None


@dataclass(frozen=True)
class ConversionFailed:
    error: str


@dataclass(frozen=True)
class Cancel:
    pass


WizardEvent = Union[
    SubmitForm,
    DuplicatesFound,
    DuplicateSearchFailed,
    SelectCandidate,
    ChooseLink,
    ChooseCreateNew,
    ContinueFromDuplicates,
    Back,
    ConversionSucceeded,
    ConversionFailed,
    Cancel,
]


def initial_state(prospect: Mapping[str, Any]) -> FormState:
    """Form step seeded from the prospect; converted prospects are refused."""
    refused = prospect.get("status") == ProspectStatus.CONVERTED.value
    return FormState(
        prospect=prospect,
        account_data=seed_account_draft(prospect),
        error=ALREADY_CONVERTED_MESSAGE if refused else None,
        refused=refused,
    )


def transition(state: WizardState, event: WizardEvent) -> WizardState:
    """Apply one event to the wizard state.

    Args:
        state: Current state.
        event: Event to apply.

    Returns:
        The next state. States are immutable; the input is never modified.

    Raises:
        InvalidTransitionError: If the event is not valid in this state.
    """
    if isinstance(event, Cancel):
        if isinstance(state, (SuccessState, CancelledState)):
            raise InvalidTransitionError(state.step, type(event).__name__)
        return CancelledState()

    if isinstance(state, FormState) and not state.refused:
        if isinstance(event, SubmitForm):
            return replace(state, account_data=event.account_data, error=None)
        if isinstance(event, DuplicateSearchFailed):
            return replace(state, error=event.error)
        if isinstance(event, DuplicatesFound):
            candidates = tuple(
                sorted(event.candidates, key=lambda c: c.similarity_score, reverse=True)
            )
            if candidates:
                return DuplicatesState(
                    prospect=state.prospect,
                    account_data=state.account_data,
                    candidates=candidates,
                )
            return ConfirmationState(
                prospect=state.prospect,
                account_data=state.account_data,
                candidates=(),
                create_new=True,
            )

    elif isinstance(state, DuplicatesState):
        if isinstance(event, SelectCandidate):
            if not any(c.account_id == event.account_id for c in state.candidates):
                raise InvalidTransitionError(state.step, type(event).__name__)
            return replace(state, selected_account_id=event.account_id)
        if isinstance(event, ChooseLink):
            return replace(state, decision="link")
        if isinstance(event, ChooseCreateNew):
            return replace(state, decision="create_new")
        if isinstance(event, ContinueFromDuplicates) and state.can_continue:
            create_new = state.decision == "create_new"
            return ConfirmationState(
                prospect=state.prospect,
                account_data=state.account_data,
                candidates=state.candidates,
                create_new=create_new,
                selected_account_id=None if create_new else state.selected_account_id,
            )
        if isinstance(event, Back):
            return FormState(prospect=state.prospect, account_data=state.account_data)

    elif isinstance(state, ConfirmationState):
        if isinstance(event, ConversionSucceeded):
            return SuccessState(
                prospect=state.prospect, account_id=event.account_id, message=event.message
            )
        if isinstance(event, ConversionFailed):
            return replace(state, error=event.error)
        if isinstance(event, Back):
            if state.candidates:
                return DuplicatesState(
                    prospect=state.prospect,
                    account_data=state.account_data,
                    candidates=state.candidates,
                    decision="create_new" if state.create_new else "link",
                    selected_account_id=state.selected_account_id,
                )
            return FormState(prospect=state.prospect, account_data=state.account_data)

    raise InvalidTransitionError(state.step, type(event).__name__)


class ConversionWizard:
    """Drives the conversion wizard for one prospect at a time.

    ``open`` resets everything, so state never carries over between
    prospects. A response that arrives after the wizard was re-opened or
    cancelled is discarded.
    """

    def __init__(
        self,
        prospects: ProspectService,
        session: Session,
        accounts: AccountService | None = None,
    ) -> None:
        """Initialize the wizard.

        Args:
            prospects: Service for duplicate search and conversion.
            session: Caller session.
            accounts: When given, edited form fields are written to a newly
                created account after conversion.
        """
        self.prospects = prospects
        self.accounts = accounts
        self.session = session
        self.state: WizardState = CancelledState()
        self.loading = False
        self._generation = 0

    def dispatch(self, event: WizardEvent) -> WizardState:
        self.state = transition(self.state, event)
        return self.state

    def open(self, prospect: Mapping[str, Any]) -> WizardState:
        """Start over for a prospect."""
        self._generation += 1
        self.loading = False
        self.state = initial_state(prospect)
        return self.state

    @property
    def is_open(self) -> bool:
        return not isinstance(self.state, CancelledState)

    @property
    def can_submit(self) -> bool:
        return (
            isinstance(self.state, FormState)
            and not self.state.refused
            and not self.loading
        )

    @property
    def can_continue(self) -> bool:
        return (
            isinstance(self.state, DuplicatesState)
            and self.state.can_continue
            and not self.loading
        )

    @property
    def can_confirm(self) -> bool:
        return isinstance(self.state, ConfirmationState) and not self.loading

    async def submit_form(
        self, account_data: AccountDraft | Mapping[str, Any] | None = None
    ) -> WizardState:
        """Save the form and search for duplicate accounts.

        A missing company name or a failed search stays on the form with an
        inline error.
        """
        if not isinstance(self.state, FormState) or self.state.refused:
            raise InvalidTransitionError(self.state.step, "SubmitForm")
        if self.loading:
            return self.state

        if account_data is None:
            draft = self.state.account_data
        elif isinstance(account_data, AccountDraft):
            draft = account_data
        else:
            draft = AccountDraft.model_validate(
                {**self.state.account_data.model_dump(), **dict(account_data)}
            )
        self.dispatch(SubmitForm(draft))

        if not draft.name.strip():
            return self.dispatch(DuplicateSearchFailed("Company name is required"))

        generation = self._generation
        self.loading = True
        try:
            result = await self.prospects.find_duplicate_accounts(
                self.session,
                {
                    "name": draft.name,
                    "domain": draft.domain,
                    "phone": draft.phone,
                    "city": draft.city,
                    "state": draft.state,
                },
            )
        finally:
            if generation == self._generation:
                self.loading = False

        if generation != self._generation or not isinstance(self.state, FormState):
            return self.state
        if not result.success:
            return self.dispatch(DuplicateSearchFailed(result.error or "Duplicate check failed"))
        return self.dispatch(DuplicatesFound(tuple(result.data or ())))

    def select_candidate(self, account_id: str) -> WizardState:
        return self.dispatch(SelectCandidate(account_id))

    def choose_link(self) -> WizardState:
        return self.dispatch(ChooseLink())

    def choose_create_new(self) -> WizardState:
        return self.dispatch(ChooseCreateNew())

    def continue_to_confirmation(self) -> WizardState:
        return self.dispatch(ContinueFromDuplicates())

    def back(self) -> WizardState:
        return self.dispatch(Back())

    def cancel(self) -> WizardState:
        """Close the wizard, dropping all state and any pending response."""
        self._generation += 1
        self.loading = False
        return self.dispatch(Cancel())

    def close(self) -> WizardState:
        """Dismiss the wizard from any step, including success."""
        self._generation += 1
        self.loading = False
        self.state = CancelledState()
        return self.state

    async def confirm(self) -> WizardState:
        """Convert the prospect.

        At most one conversion request is in flight; a second confirm while
        one is pending returns the current state without calling the backend.
        """
        state = self.state
        if not isinstance(state, ConfirmationState):
            raise InvalidTransitionError(state.step, "Confirm")
        if self.loading:
            return state

        generation = self._generation
        self.loading = True
        try:
            result = await self.prospects.convert_to_account(
                self.session,
                str(state.prospect.get("id")),
                None if state.create_new else state.selected_account_id,
            )
            if generation != self._generation:
                return self.state
            if not result.success or result.data is None:
                return self.dispatch(ConversionFailed(result.error or "Conversion failed."))

            account_id = result.data.account_id
            if state.create_new and self.accounts is not None and account_id:
                # loading stays set through the draft save
                await self._apply_draft(account_id, state)
            if generation != self._generation:
                return self.state
            return self.dispatch(ConversionSucceeded(account_id, result.data.message))
        finally:
            if generation == self._generation:
                self.loading = False

    async def _apply_draft(self, account_id: str, state: ConfirmationState) -> None:
        updates = state.account_data.model_dump(exclude_none=True)
        result = await self.accounts.update_account(self.session, account_id, updates)
        if not result.success:
            logger.warning(
                "Converted account created but form fields were not saved",
                extra={"account_id": account_id, "error": result.error},
            )

    def summary(self) -> dict[str, Any]:
        """Text for the confirmation step.

        Returns:
            Dict with headline, target_name, target_label, research_data
            (label/value pairs) and next_steps.
        """
        state = self.state
        if not isinstance(state, ConfirmationState):
            raise InvalidTransitionError(state.step, "Summary")

        linking = not state.create_new
        prospect = state.prospect
        candidate = state.selected_candidate

        research: list[tuple[str, str]] = [
            ("ICP Score", f"{prospect.get('icp_fit_score') or 'N/A'}/100"),
            ("Source", (prospect.get("source") or "N/A").replace("_", " ")),
            (
                "Research Tags",
                f"{len(prospect['tags'])} tags" if prospect.get("tags") else "No tags",
            ),
        ]
        if prospect.get("property_count_estimate"):
            research.append(("Properties", f"{prospect['property_count_estimate']} estimated"))
        if prospect.get("sqft_estimate"):
            research.append(("Square Footage", f"{int(prospect['sqft_estimate']):,} sq ft"))
        if prospect.get("building_types"):
            research.append(("Building Types", ", ".join(prospect["building_types"])))

        next_steps = [
            "Prospect will be linked to the existing account"
            if linking
            else "New account will be created with the provided information",
            'Prospect status will be updated to "converted"',
            "A follow-up task will be created on the existing account"
            if linking
            else "You will be assigned as the primary rep for this account",
            "All research data and notes will be preserved",
        ]

        return {
            "headline": "Link Prospect to Existing Account"
            if linking
            else "Create New Account from Prospect",
            "target_name": (
                candidate.account_name if linking and candidate else state.account_data.name
            ),
            "target_label": "Existing Account" if linking else "New Account",
            "match": {"label": candidate.match_label, "similarity": candidate.similarity_percent}
            if linking and candidate
            else None,
            "research_data": research,
            "next_steps": next_steps,
            "action_label": "Link Account" if linking else "Create Account",
        }
