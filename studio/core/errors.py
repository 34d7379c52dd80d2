class StudioError(Exception):
    pass


class NotFoundError(StudioError):
    """The task, idea or milestone is gone, usually deleted elsewhere."""


class ValidationError(StudioError):
    """Rejected before the store is called."""


class ConflictError(StudioError):
    """The store refused a change that breaks one of its constraints."""


class StoreError(StudioError):
    """The store could not complete the request."""


class AmbiguousError(StudioError):
    def __init__(self, ref: str, count: int = 0, sample: list[str] | None = None):
        self.ref = ref
        self.count = count
        self.sample = sample or []
        found = f"{count} matches" if count else "several matches"
        listed = f" ({', '.join(self.sample)})" if self.sample else ""
        super().__init__(f"'{ref}' is ambiguous: {found}{listed}")
