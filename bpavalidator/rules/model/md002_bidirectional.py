from bpavalidator.core.findings import Severity
from bpavalidator.rules.base import Rule

MD002 = Rule(
    id="AVOID_EXCESSIVE_BI-DIRECTIONAL_RELATIONSHIPS",
    name="[Performance] Avoid excessive bi-directional relationships",
    category="Performance",
    severity=Severity.WARNING,
    description=(
        "Bi-directional cross-filtering makes filter propagation ambiguous and slows queries. "
        "Prefer single-direction relationships unless explicitly required."
    ),
    scope="Model",
    threshold=3,
    aggregate="BidirectionalRelationshipCount",
)
