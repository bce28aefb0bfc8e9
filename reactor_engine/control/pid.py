"""control/pid.py — Discrete PID controller with output and slew limits.

The controller acts on ``error = setpoint - measurement``.  The integral is
clamped so that the integral term alone can never exceed the output span
(anti-windup), the output is clipped to ``[output_min, output_max]`` and
its change per update is limited to ``rate_limit * dt``.
"""

from __future__ import annotations

import math

from ..errors import ValidationError


class PIDController:
    """Positional PID; state is kept between :meth:`update` calls.

    Parameters
    ----------
    kp, ki, kd:
        Proportional, integral and derivative gains.
    setpoint:
        Target value of the measured variable.
    output_min, output_max:
        Hard limits on the control output.
    rate_limit:
        Largest output change per second; ``inf`` disables slew limiting.
    """

    def __init__(
        self,
        kp: float,
        ki: float,
        kd: float,
        setpoint: float,
        output_min: float = -math.inf,
        output_max: float = math.inf,
        rate_limit: float = math.inf,
    ) -> None:
        if min(kp, ki, kd) < 0:
            raise ValidationError("PID gains must not be negative", field="gains")
        if output_min > output_max:
            raise ValidationError(
                "Output minimum exceeds maximum", field="outputLimits", valid_range=(output_min, output_max)
            )
        if rate_limit <= 0:
            raise ValidationError("Rate limit must be positive", field="rateLimit")
        self.kp = kp
        self.ki = ki
        self.kd = kd
        self.setpoint = setpoint
        self.output_min = output_min
        self.output_max = output_max
        self.rate_limit = rate_limit
        self.reset()

    def reset(self) -> None:
        """Clear the accumulated integral and the remembered error and output."""
        self.integral = 0.0
        self._last_error: float | None = None
        self._last_output = min(max(0.0, self.output_min), self.output_max)

    def set_setpoint(self, setpoint: float) -> None:
        self.setpoint = setpoint

    @property
    def last_output(self) -> float:
        return self._last_output

    def _integral_limit(self) -> float:
        span = self.output_max - self.output_min
        if self.ki == 0 or not math.isfinite(span):
            return math.inf
        return span / self.ki

    def update(self, measurement: float, dt: float) -> float:
        """Advance one step of *dt* seconds and return the new output."""
        if dt <= 0:
            raise ValidationError("Time step must be positive", field="timeStep")
        error = self.setpoint - measurement
        limit = self._integral_limit()
        self.integral = min(max(self.integral + error * dt, -limit), limit)
        # No derivative kick on the first sample.
        derivative = 0.0 if self._last_error is None else (error - self._last_error) / dt

        output = self.kp * error + self.ki * self.integral + self.kd * derivative
        output = min(max(output, self.output_min), self.output_max)
        max_change = self.rate_limit * dt
        if abs(output - self._last_output) > max_change:
            output = self._last_output + math.copysign(max_change, output - self._last_output)

        self._last_error = error
        self._last_output = output
        return output
