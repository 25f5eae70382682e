"""Azure resource kinds managed by the operator.

Each module defines a frozen config dataclass built from a custom resource
spec and a ResourceKind strategy used by the generic lifecycle handler.
"""
