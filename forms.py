"""
Generic form state: values, per-field errors, touched flags and submission.

A ``FormState`` is created with the initial value of every field, an optional
mapping of field name to an ordered list of ``Rule`` objects, and an optional
submit callback (plain function or coroutine function).

Validation never raises. A failing rule records its message in ``errors``;
only the submit callback's own exceptions propagate out of ``submit``.
"""
import copy
import inspect
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional


class Rule(NamedTuple):
    validate: Callable[[Any], bool]
    message: str


Rules = Mapping[str, List[Rule]]
SubmitCallback = Callable[[Dict[str, Any]], Any]


def first_failure(rules: List[Rule], value: Any) -> Optional[str]:
    """Return the message of the first rule that rejects ``value``."""
    for rule in rules:
        if not rule.validate(value):
            return rule.message
    return None


class FormState:
    def __init__(
        self,
        initial_values: Dict[str, Any],
        rules: Optional[Rules] = None,
        on_submit: Optional[SubmitCallback] = None,
    ):
        self.rules: Dict[str, List[Rule]] = dict(rules or {})
        self.on_submit = on_submit
        self._initial_values = initial_values
        self.is_submitting = False
        self._seed()

    def _seed(self) -> None:
        self.values: Dict[str, Any] = copy.deepcopy(self._initial_values)
        self.errors: Dict[str, str] = {}
        self.touched: Dict[str, bool] = {}

    @property
    def initial_values(self) -> Dict[str, Any]:
        return self._initial_values

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def validate_field(self, field: str) -> Optional[str]:
        """Run one field's rules; record or clear its error and return it."""
        field_rules = self.rules.get(field)
        if not field_rules:
            return None
        message = first_failure(field_rules, self.values.get(field))
        if message is None:
            self.errors.pop(field, None)
        else:
            self.errors[field] = message
        return message

    def validate(self) -> bool:
        """Validate every field that has rules. Returns True when all pass."""
        errors = {}
        for field, field_rules in self.rules.items():
            message = first_failure(field_rules, self.values.get(field))
            if message is not None:
                errors[field] = message
        self.errors = errors
        return not errors

    def set_value(self, field: str, value: Any) -> None:
        self.values[field] = value
        if self.touched.get(field):
            self.validate_field(field)

    def set_values(self, values: Mapping[str, Any]) -> None:
        """Merge several values at once without running validation."""
        self.values.update(values)

    def set_touched(self, field: str, touched: bool = True) -> None:
        self.touched[field] = touched
        if touched:
            self.validate_field(field)

    def blur(self, field: str) -> None:
        self.set_touched(field, True)

    async def submit(self) -> bool:
        """
        Touch every field, validate, then hand the values to ``on_submit``.

        Returns False without calling the callback when validation fails.
        ``is_submitting`` is True only while the callback runs and is reset
        whether the callback returns or raises.
        """
        for field in set(self.values) | set(self.rules):
            self.touched[field] = True

        if not self.validate():
            return False

        if self.on_submit is not None:
            self.is_submitting = True
            try:
                result = self.on_submit(dict(self.values))
                if inspect.isawaitable(result):
                    await result
            finally:
                self.is_submitting = False
        return True

    def reset(self) -> None:
        self._seed()
        self.is_submitting = False

    def reinitialize(self, initial_values: Dict[str, Any]) -> bool:
        """
        Re-seed from a different initial-values object.

        The comparison is by identity, so passing the same dict again keeps
        the current state. A submission still in flight keeps its submitting
        flag. Returns True when the state was replaced.
        """
        if initial_values is self._initial_values:
            return False
        self._initial_values = initial_values
        self._seed()
        return True
