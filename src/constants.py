"""Constants used across the operator."""

# Custom resource coordinates
CRD_GROUP = "sunet.se"
CRD_VERSION = "v1alpha1"

# Finalizer added to every managed custom resource
FINALIZER = "sunet.se/azure-operator"

# Annotation that adopts an existing Azure resource instead of creating one
IMPORT_ID_ANNOTATION = "sunet.se/import-id"

# Separator between the two halves of an association identifier
COMPOSITE_ID_SEPARATOR = "|"

# Label placed on secrets holding sensitive outputs
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "azure-operator"
