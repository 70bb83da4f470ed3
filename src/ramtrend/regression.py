import math
from dataclasses import asdict, dataclass, fields
from typing import Any


@dataclass(frozen=True, slots=True)
class Fit:
    intercept: "float"
    slope: "float"
    slope_std_err: "float"


@dataclass
class Accumulator:
    """
    Accumulator holds the running sufficient statistics of an
    ordinary least squares regression of y over x for a single key.

    Both raw sums and centred moments are maintained. The raw sums
    are the exact accumulation of every refined point. The fit is
    derived from the centred moments, updated with provisional means,
    since epoch-second x values make sum_xx - n * mean_x^2 cancel
    catastrophically in double precision.

    Every update and every derived quantity is O(1), no point
    history is kept.
    """

    n: "int" = 0
    sum_x: "float" = 0.0
    sum_y: "float" = 0.0
    sum_xx: "float" = 0.0
    sum_xy: "float" = 0.0
    sum_yy: "float" = 0.0
    mean_x: "float" = 0.0
    mean_y: "float" = 0.0
    # centred sums: Sxx, Sxy and Syy
    sxx: "float" = 0.0
    sxy: "float" = 0.0
    syy: "float" = 0.0

    def refine(self, x: "float", y: "float") -> "None":
        """
        adds the point (x, y) to the statistics.
        """
        x = float(x)
        y = float(y)

        if self.n == 0:
            self.mean_x = x
            self.mean_y = y
        else:
            fact = self.n / (self.n + 1.0)
            dx = x - self.mean_x
            dy = y - self.mean_y
            self.sxx += dx * dx * fact
            self.syy += dy * dy * fact
            self.sxy += dx * dy * fact
            self.mean_x += dx / (self.n + 1.0)
            self.mean_y += dy / (self.n + 1.0)

        self.n += 1
        self.sum_x += x
        self.sum_y += y
        self.sum_xx += x * x
        self.sum_xy += x * y
        self.sum_yy += y * y

    @property
    def slope(self) -> "float":
        if self.n < 2 or self.sxx <= 0.0:
            return math.nan
        return self.sxy / self.sxx

    @property
    def intercept(self) -> "float":
        return self.mean_y - self.slope * self.mean_x

    @property
    def sum_squared_errors(self) -> "float":
        if self.n < 2 or self.sxx <= 0.0:
            return math.nan
        # rounding may push an exact fit slightly below zero
        return max(0.0, self.syy - self.sxy * self.sxy / self.sxx)

    @property
    def slope_std_err(self) -> "float":
        if self.n < 2 or self.sxx <= 0.0:
            return math.nan
        # two distinct points always lie on the fitted line
        if self.n == 2:
            return 0.0
        return math.sqrt(self.sum_squared_errors / (self.n - 2) / self.sxx)

    def fit(self) -> "Fit | None":
        """
        returns the current regression coefficients, or None while
        they are undefined (fewer than two points or all x equal).
        """
        if self.n < 2 or self.sxx <= 0.0:
            return None
        return Fit(
            intercept=self.intercept,
            slope=self.slope,
            slope_std_err=self.slope_std_err,
        )

    def copy(self) -> "Accumulator":
        return Accumulator(**asdict(self))

    def to_dict(self) -> "dict[str, Any]":
        return asdict(self)

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "Accumulator":
        names = {f.name for f in fields(cls)}
        unknown = set(data) - names
        if unknown:
            raise ValueError(f"unknown accumulator fields: {sorted(unknown)}")
        acc = cls(**data)
        acc.n = int(acc.n)
        return acc
