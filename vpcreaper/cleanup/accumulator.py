"""Best-effort error accumulation for batch teardown operations.

A batch (all subnets, all security groups, one whole pass) keeps going after
individual failures. Each failure is appended to an ErrorAccumulator and the
batch hands back a single AccumulatedError at the end. An empty
AccumulatedError means the batch succeeded.
"""

from typing import Iterable, Iterator, List, Optional


class ResourceActionError(Exception):
    """A single provider operation on a single resource failed."""

    def __init__(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        cause: BaseException,
    ):
        self.action = action
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.cause = cause
        super().__init__(f"{action} {resource_type} {resource_id}: {cause}")
        self.__cause__ = cause


class AccumulatedError(Exception):
    """Ordered collection of independent failures from one batch."""

    def __init__(self, errors: Optional[Iterable[BaseException]] = None):
        self.errors: List[BaseException] = list(errors or [])
        super().__init__(self._format())

    def _format(self) -> str:
        if not self.errors:
            return "no errors"
        if len(self.errors) == 1:
            return str(self.errors[0])
        return f"{len(self.errors)} errors: " + "; ".join(str(e) for e in self.errors)

    def __bool__(self) -> bool:
        return bool(self.errors)

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self.errors)


class ErrorAccumulator:
    """Collects failures without aborting the batch that produces them."""

    def __init__(self) -> None:
        self._errors: List[BaseException] = []

    def append(self, error: Optional[BaseException]) -> None:
        """Record a failure. None is ignored; nested accumulations are flattened."""
        if error is None:
            return
        if isinstance(error, AccumulatedError):
            self._errors.extend(error.errors)
            return
        self._errors.append(error)

    def extend(self, errors: Iterable[BaseException]) -> None:
        for error in errors:
            self.append(error)

    @property
    def has_failures(self) -> bool:
        return bool(self._errors)

    @property
    def errors(self) -> List[BaseException]:
        return self._errors.copy()

    def __len__(self) -> int:
        return len(self._errors)

    def combined(self) -> AccumulatedError:
        """Return every recorded failure as one AccumulatedError (possibly empty)."""
        return AccumulatedError(self._errors)
