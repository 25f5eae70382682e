"""Kopf handlers for the Azure resource CRDs.

All kinds share one set of handlers:
- Create/update/delete via Kopf decorators
- Periodic re-read to detect resources removed outside the operator
- Status tracking via patch.status
"""

# Import handlers to register them with Kopf
from handlers.azure_resources import *  # noqa: F401, F403
