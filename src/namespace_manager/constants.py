"""
Constants used throughout the namespace manager.

This module defines constant values shared by the lifecycle manager,
the broker monitor and the record stores:
- Naming rules for namespaces and broker identities
- Store labels and limits
- Connection termination reasons
"""

# Namespace naming rules
NAMESPACE_MAX_LENGTH = 64
NAMESPACE_PATTERN = r"^[A-Za-z0-9_-]+$"

# Separator between the namespace and the rest of a queue/exchange name
RESOURCE_PATH_SEPARATOR = "/"

# Separator between the namespace and the identity slot in a broker username
IDENTITY_SLOT_SEPARATOR = "-"

# Maximum page size accepted when listing namespaces
LIST_NAMESPACES_MAX_LIMIT = 1000

# Password generation: 22 url-safe characters, like a v4 slug id
PASSWORD_BYTES = 16

# Conditional modify retries before giving up on a contended record
MODIFY_MAX_ATTEMPTS = 5

# Kubernetes store labels
STORE_LABEL_MANAGED_BY = "namespace-manager.io/managed-by"
STORE_LABEL_MANAGED_BY_VALUE = "broker-namespace-manager"
STORE_LABEL_TABLE = "namespace-manager.io/table"
STORE_RECORD_KEY = "record"

# Connection termination reasons sent to the broker
REASON_NAMESPACE_EXPIRED = "Namespace expired."
REASON_CONNECTION_TOO_OLD = "Connection too long lived."

# Job names accepted by the command line entry point
JOB_ROTATE = "rotate"
JOB_EXPIRE = "expire"
JOB_MONITOR = "monitor"
JOBS = (JOB_ROTATE, JOB_EXPIRE, JOB_MONITOR)
