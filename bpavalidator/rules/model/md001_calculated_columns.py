from bpavalidator.core.findings import Severity
from bpavalidator.rules.base import Rule

MD001 = Rule(
    id="REDUCE_NUMBER_OF_CALCULATED_COLUMNS",
    name="[Performance] Reduce number of calculated columns",
    category="Performance",
    severity=Severity.WARNING,
    description=(
        "Calculated columns do not compress as well as data columns and take longer to refresh. "
        "Move the logic upstream (data warehouse or Power Query) where possible."
    ),
    scope="Model",
    threshold=5,
    aggregate="CalculatedColumnCount",
)
