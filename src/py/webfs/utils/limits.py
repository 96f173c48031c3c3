from typing import NamedTuple
from enum import Enum
import resource


class LimitType(Enum):
	Files = resource.RLIMIT_NOFILE


# A file server keeps one descriptor per connection and one per file
# being sent, so the open files soft limit is the one that matters.
REASONABLE_LIMITS: dict[LimitType, int] = {
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(scope.value))


def unlimit(
	scope: LimitType, ratio: float = 1.0, *, maximum: int | None = 0
) -> int | bool:
	"""Raises the soft limit of `scope` towards its hard limit, returning
	the new soft limit or `False` when the system refused."""
	lm = limit(scope)
	if lm.soft == resource.RLIM_INFINITY:
		return lm.soft
	try:
		# Darwin reports really high hard limits that lead to OverflowErrors
		maximum = REASONABLE_LIMITS.get(scope) if maximum == 0 else maximum
		if lm.hard == resource.RLIM_INFINITY:
			target = max(lm.soft, maximum or lm.soft)
		else:
			target = int(lm.soft + ratio * (lm.hard - lm.soft))
			if maximum:
				target = max(lm.soft, min(maximum, target))
		resource.setrlimit(scope.value, (target, lm.hard))
		return target
	except ValueError:
		return False
	except OSError:
		return False


# EOF
