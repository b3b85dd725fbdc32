"""
Error taxonomy for reward queries.

Argument and not-supported errors are caller-correctable and raised before any
event data is fetched. Invariant errors mean the event schema assumption broke
and the computation must stop. Transport errors (requests exceptions, RpcError,
SubgraphError) are never wrapped here.
"""


class RewardsError(Exception):
    code = "ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ArgumentError(RewardsError, ValueError):
    code = "INVALID_ARGUMENT"


class NotSupportedError(RewardsError):
    code = "NOT_SUPPORTED"


class InvariantError(RewardsError, AssertionError):
    code = "INVARIANT_VIOLATION"


def invariant_argument(condition: bool, message: str) -> None:
    if not condition:
        raise ArgumentError(message)


def invariant(condition: bool, message: str) -> None:
    if not condition:
        raise InvariantError(message)
