"""
Statistical helpers for health and behavior analytics.

Linear regression, moving averages, accuracy metrics and confidence intervals
for predictions, plus the consistency scores used by the behavior services.
"""

import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Dict, List, Sequence, Tuple

from healthtrack.utils.timezone import isoformat_utc, to_utc_naive

_EPOCH = datetime(1970, 1, 1)

# Two-sided Student-t critical values at 95% confidence, indexed by degrees of freedom
T_TABLE: Dict[int, float] = {
    1: 12.706,
    2: 4.303,
    3: 3.182,
    4: 2.776,
    5: 2.571,
    6: 2.447,
    7: 2.365,
    8: 2.306,
    9: 2.262,
    10: 2.228,
    15: 2.131,
    20: 2.086,
    25: 2.060,
    30: 2.042,
}


@dataclass
class LinearRegressionResult:
    slope: float
    intercept: float
    r_squared: float
    residual_std: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def calculate_mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def calculate_variance(values: Sequence[float], mean: float = None) -> float:
    """Population variance; 0 for an empty sequence."""
    if not values:
        return 0.0
    mean_value = calculate_mean(values) if mean is None else mean
    return sum((value - mean_value) ** 2 for value in values) / len(values)


def calculate_std(values: Sequence[float]) -> float:
    return math.sqrt(calculate_variance(values))


def calculate_covariance(
    x_values: Sequence[float],
    y_values: Sequence[float],
    x_mean: float = None,
    y_mean: float = None,
) -> float:
    if len(x_values) != len(y_values) or not x_values:
        return 0.0
    mean_x = calculate_mean(x_values) if x_mean is None else x_mean
    mean_y = calculate_mean(y_values) if y_mean is None else y_mean
    return sum((x - mean_x) * (y - mean_y) for x, y in zip(x_values, y_values)) / len(x_values)


def linear_regression(points: Sequence[Tuple[float, float]]) -> LinearRegressionResult:
    """
    Ordinary least squares fit over (x, y) points.

    Raises ValueError with fewer than two points. When every x is identical the
    slope is 0 and the intercept is the mean of y.
    """
    if len(points) < 2:
        raise ValueError("Linear regression requires at least 2 data points")

    x_values = [float(x) for x, _ in points]
    y_values = [float(y) for _, y in points]
    x_mean = calculate_mean(x_values)
    y_mean = calculate_mean(y_values)
    x_variance = calculate_variance(x_values, x_mean)

    if x_variance == 0:
        return LinearRegressionResult(
            slope=0.0,
            intercept=y_mean,
            r_squared=0.0,
            residual_std=math.sqrt(calculate_variance(y_values, y_mean)),
        )

    slope = calculate_covariance(x_values, y_values, x_mean, y_mean) / x_variance
    intercept = y_mean - slope * x_mean

    total_ss = sum((y - y_mean) ** 2 for y in y_values)
    residual_ss = sum((y - (slope * x + intercept)) ** 2 for x, y in zip(x_values, y_values))
    r_squared = 1.0 if total_ss == 0 else 1 - residual_ss / total_ss
    dof = len(points) - 2
    residual_std = math.sqrt(residual_ss / dof) if dof > 0 else 0.0

    return LinearRegressionResult(
        slope=slope,
        intercept=intercept,
        r_squared=max(0.0, min(1.0, r_squared)),
        residual_std=residual_std,
    )


def calculate_slope(values: Sequence[float]) -> float:
    """Naive least-squares slope of values against their index; 0 for fewer than two values."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = sum(range(n))
    sum_y = sum(values)
    sum_xy = sum(index * value for index, value in enumerate(values))
    sum_xx = sum(index * index for index in range(n))
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def moving_average(values: Sequence[float], window_size: int) -> List[float]:
    if window_size <= 0:
        raise ValueError("Window size must be positive")
    if window_size > len(values):
        raise ValueError("Window size cannot be larger than the number of values")
    return [
        calculate_mean(values[i:i + window_size])
        for i in range(len(values) - window_size + 1)
    ]


def calculate_mape(actual_values: Sequence[float], predicted_values: Sequence[float]) -> float:
    """Mean absolute percentage error; infinite when any actual value is zero."""
    if len(actual_values) != len(predicted_values):
        raise ValueError("Actual and predicted values arrays must have the same length")
    if not actual_values:
        return 0.0
    if any(actual == 0 for actual in actual_values):
        return math.inf
    errors = [abs((actual - predicted) / actual) for actual, predicted in zip(actual_values, predicted_values)]
    return calculate_mean(errors) * 100


def get_t_critical_value(alpha: float, degrees_of_freedom: int) -> float:
    """Critical value for a two-sided interval where alpha is the tail probability."""
    if degrees_of_freedom >= 30:
        if alpha <= 0.005:
            return 2.576  # 99%
        if alpha <= 0.01:
            return 2.326  # 98%
        if alpha <= 0.025:
            return 1.96  # 95%
        if alpha <= 0.05:
            return 1.645  # 90%
        return 1.282  # 80%

    closest = min(T_TABLE, key=lambda df: (abs(df - degrees_of_freedom), df))
    return T_TABLE[closest]


def generate_confidence_interval(
    predicted_value: float,
    confidence_level: float,
    residual_std: float,
    sample_size: int,
) -> Dict[str, float]:
    alpha = 1 - confidence_level
    t_critical = get_t_critical_value(alpha / 2, sample_size - 2)
    margin = t_critical * residual_std * math.sqrt(1 + 1 / max(sample_size, 1))
    return {
        "upper": predicted_value + margin,
        "lower": predicted_value - margin,
    }


def datetime_to_numeric(value: datetime) -> float:
    """Seconds since the epoch for a UTC datetime, used as the regression x axis."""
    return (to_utc_naive(value) - _EPOCH).total_seconds()


def generate_future_predictions(
    regression: LinearRegressionResult,
    last_date: datetime,
    future_days: int,
) -> List[Dict[str, object]]:
    """Extrapolate one value per day after `last_date`; values are clamped at zero."""
    last_date = to_utc_naive(last_date)
    predictions = []
    for day in range(1, future_days + 1):
        future_date = last_date + timedelta(days=day)
        value = regression.slope * datetime_to_numeric(future_date) + regression.intercept
        predictions.append({
            "date": isoformat_utc(future_date),
            "value": max(0.0, value),
            "isPrediction": True,
        })
    return predictions


def calculate_prediction_accuracy(
    actual_values: Sequence[float],
    predicted_values: Sequence[float],
) -> Dict[str, float]:
    if len(actual_values) != len(predicted_values):
        raise ValueError("Actual and predicted values arrays must have the same length")
    if not actual_values:
        return {"mape": 0.0, "rmse": 0.0, "mae": 0.0, "accuracy": 100.0}

    mape = calculate_mape(actual_values, predicted_values)
    pairs = list(zip(actual_values, predicted_values))
    rmse = math.sqrt(calculate_mean([(a - p) ** 2 for a, p in pairs]))
    mae = calculate_mean([abs(a - p) for a, p in pairs])

    actual_range = max(actual_values) - min(actual_values)
    normalized_rmse = rmse / actual_range if actual_range > 0 else 0.0
    accuracy = max(0.0, min(100.0, (1 - normalized_rmse) * 100))

    return {
        "mape": mape if math.isfinite(mape) else 0.0,
        "rmse": rmse,
        "mae": mae,
        "accuracy": accuracy,
    }


def consistency_from_intervals(timestamps: Sequence[datetime]) -> float:
    """
    Regularity of a series of occurrences, 0-100.

    Uses the coefficient of variation of the gaps between consecutive
    occurrences: evenly spaced events score 100.
    """
    if len(timestamps) < 2:
        return 0.0
    ordered = sorted(timestamps)
    intervals = [
        (later - earlier).total_seconds()
        for earlier, later in zip(ordered, ordered[1:])
    ]
    avg_interval = calculate_mean(intervals)
    if avg_interval <= 0:
        return 0.0
    std_dev = calculate_std(intervals)
    return min(100.0, max(0.0, 100 - (std_dev / avg_interval) * 100))


def window_consistency(values: Sequence[float]) -> float:
    """100 minus the coefficient of variation (mean floored at 1), never negative."""
    if not values:
        return 0.0
    mean = calculate_mean(values)
    std_dev = calculate_std(values)
    return max(0.0, 100 - (std_dev / max(mean, 1)) * 100)
