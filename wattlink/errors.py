"""Domain errors raised by the planner, state machine, evaluator and reporter."""


class WattlinkError(Exception):
    """Base class for all engine errors."""


# --- Planning (reject the request, nothing persisted) ---

class PlanningError(WattlinkError):
    """Raised when an order request cannot be turned into a series."""


class InvalidAmount(PlanningError):
    pass


class InvalidScheduleLength(PlanningError):
    pass


class UnsupportedStrategy(PlanningError):
    pass


class InvalidPriceCeiling(PlanningError):
    pass


class DuplicateSeries(PlanningError):
    def __init__(self, series_id: str):
        super().__init__(f"Series already exists: {series_id}")
        self.series_id = series_id


# --- Lifecycle ---

class IllegalTransition(WattlinkError):
    """Raised when an order status change is not in the transition table,
    or when the order's status changed underneath the caller."""

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(f"Illegal transition for order {order_id}: {current} -> {target}")
        self.order_id = order_id
        self.current = current
        self.target = target


class UnknownOrder(WattlinkError):
    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class UnknownSeries(WattlinkError):
    def __init__(self, series_id: str):
        super().__init__(f"Series not found: {series_id}")
        self.series_id = series_id


# --- Resolution ---

class OracleUnavailable(WattlinkError):
    """Oracle or time lock could not be read (unreachable, stale, timed out).

    Callers treat this as "not eligible, retry later".
    """


class DuplicateReport(WattlinkError):
    def __init__(self, order_id: str):
        super().__init__(f"Fill already reported for order {order_id}")
        self.order_id = order_id
