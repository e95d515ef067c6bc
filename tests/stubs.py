from dispatchlib.types import TransportOptions, TransportResponse


class ScriptedTransport:
    """Replays a list of outcomes; exceptions are raised, anything else returned."""

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls: list[tuple[str, TransportOptions, str]] = []

    def execute(self, url: str, options: TransportOptions, method: str) -> TransportResponse:
        self.calls.append((url, options, method))
        if not self.outcomes:
            return TransportResponse(status=200, body=b"ok", headers={})
        outcome = self.outcomes[0] if len(self.outcomes) == 1 else self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FixedRandom:
    def __init__(self, values):
        self.values = list(values)
        self.draws = 0

    def random(self) -> float:
        self.draws += 1
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]
