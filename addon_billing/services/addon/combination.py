"""
Combination Constraint Checker.

Decides whether an add-on may be applied given the codes already accepted
for the same visit. The allow-list is checked first and is the stricter
gate.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from addon_billing.schemas.addon import AddOnDefinitionSchema


@dataclass(frozen=True)
class CombinationCheck:
    """Outcome of a combination check."""

    allowed: bool
    reason: Optional[str] = None


def check_combination(
    definition: AddOnDefinitionSchema,
    accepted_codes: Iterable[str],
) -> CombinationCheck:
    """
    Check a candidate against the codes accepted so far.

    An unset or empty list never restricts.
    """
    accepted = list(accepted_codes)

    if definition.can_combine_with_only:
        allow = set(definition.can_combine_with_only)
        outside = [c for c in accepted if c not in allow]
        if outside:
            return CombinationCheck(
                allowed=False,
                reason=f"{definition.code} may only combine with {sorted(allow)}; already accepted {outside}",
            )

    if definition.cannot_combine_with:
        deny = set(definition.cannot_combine_with)
        clashing = [c for c in accepted if c in deny]
        if clashing:
            return CombinationCheck(
                allowed=False,
                reason=f"{definition.code} cannot combine with {clashing}",
            )

    return CombinationCheck(allowed=True)
