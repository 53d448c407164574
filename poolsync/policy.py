"""Classification of delivery responses for the sync engine."""

DELIVERED = 'delivered'
DROP = 'drop'
HALT = 'halt'

# Session or outage conditions: stop the pass and keep the operation.
_HALT_STATUSES = frozenset([401, 403])


def classify(status: int) -> str:
    """
    Map an HTTP status to what the sync engine does with the operation.

    2xx is DELIVERED. 401, 403 and any 5xx are HALT: the pass stops and the
    operation stays at the head of the queue. Every other status (including
    409 and 422) is DROP: the request can never succeed as stated, so it is
    removed and the pass carries on.
    """
    if 200 <= status < 300:
        return DELIVERED
    if status in _HALT_STATUSES or status >= 500:
        return HALT
    return DROP
