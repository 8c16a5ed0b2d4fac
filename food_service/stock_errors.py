"""Stock failure taxonomy.

A stock failure is one ``StockError`` tagged with a ``StockErrorKind``. What a
client sees for it (HTTP status, severity, message, suggestions) comes from
``describe``, a pure lookup on the kind and the available quantity.
"""
from dataclasses import dataclass
from typing import List
import enum


class StockErrorKind(str, enum.Enum):
    INSUFFICIENT = "insufficient"
    RESERVED = "reserved"
    UNAVAILABLE = "unavailable"
    CONFLICT = "conflict"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class StockErrorInfo:
    kind: StockErrorKind
    severity: Severity
    http_status: int
    user_message: str
    suggestions: List[str]
    retryable: bool


class StockError(Exception):
    def __init__(self, kind: StockErrorKind, food_name: str, requested: int = 0, available: int = 0):
        self.kind = StockErrorKind(kind)
        self.food_name = food_name
        self.requested = requested
        self.available = available
        super().__init__(_system_message(self.kind, food_name, requested, available))

    def describe(self, locale: str = "en") -> StockErrorInfo:
        return describe(self.kind, self.available, food_name=self.food_name, locale=locale)

    def to_dict(self) -> dict:
        return {
            "error": "StockError",
            "type": self.kind.value,
            "foodName": self.food_name,
            "requested": self.requested,
            "available": self.available,
            "message": str(self),
        }


def _system_message(kind, food_name, requested, available):
    if kind == StockErrorKind.INSUFFICIENT:
        return f"Insufficient stock for {food_name}: available {available}, requested {requested}"
    if kind == StockErrorKind.RESERVED:
        return f"{food_name} is fully reserved by other customers"
    if kind == StockErrorKind.UNAVAILABLE:
        return f"{food_name} is currently unavailable"
    return f"Concurrent stock update on {food_name}; retry shortly"


_HTTP_STATUS = {
    StockErrorKind.INSUFFICIENT: 409,
    StockErrorKind.RESERVED: 409,
    StockErrorKind.UNAVAILABLE: 409,
    StockErrorKind.CONFLICT: 429,
}

_MESSAGES = {
    "en": {
        "out_of_stock": "Sorry, {food} is out of stock.",
        StockErrorKind.INSUFFICIENT: "Sorry, there is not enough {food} in stock. Only {available} left.",
        StockErrorKind.RESERVED: "Sorry, {food} has been reserved by other customers.",
        StockErrorKind.UNAVAILABLE: "Sorry, {food} is currently unavailable.",
        StockErrorKind.CONFLICT: "We are receiving many requests right now. Please try again shortly.",
    },
    "ja": {
        "out_of_stock": "申し訳ございません。「{food}」は現在在庫切れです。",
        StockErrorKind.INSUFFICIENT: "申し訳ございません。「{food}」の在庫が不足しています。現在{available}個のみご利用いただけます。",
        StockErrorKind.RESERVED: "申し訳ございません。「{food}」は他のお客様により予約済みです。",
        StockErrorKind.UNAVAILABLE: "申し訳ございません。「{food}」は現在ご利用いただけません。",
        StockErrorKind.CONFLICT: "アクセスが集中しています。しばらく時間をおいて再度お試しください。",
    },
}

_SUGGESTIONS = {
    "en": {
        "reduce": "Reduce the quantity to {available} or fewer",
        "similar": "Browse similar items",
        "restock": "Sign up for restock notifications",
        "later": "Please try again later",
        "reload": "Reload the page",
        "retry": "Retry in a few moments",
    },
    "ja": {
        "reduce": "数量を{available}個以下に変更してください",
        "similar": "類似商品をお探しください",
        "restock": "再入荷のお知らせにご登録ください",
        "later": "しばらく時間をおいて再度お試しください",
        "reload": "ページを再読み込みしてください",
        "retry": "数分後に再度お試しください",
    },
}


def severity_for(kind: StockErrorKind, available: int) -> Severity:
    if kind == StockErrorKind.INSUFFICIENT:
        return Severity.CRITICAL if available == 0 else Severity.HIGH
    if kind == StockErrorKind.UNAVAILABLE:
        return Severity.CRITICAL
    if kind == StockErrorKind.RESERVED:
        return Severity.MEDIUM
    return Severity.LOW


def suggestion_keys(kind: StockErrorKind, available: int) -> List[str]:
    if kind == StockErrorKind.INSUFFICIENT:
        keys = ["reduce"] if available > 0 else []
        return keys + ["similar", "restock"]
    if kind == StockErrorKind.UNAVAILABLE:
        return ["similar", "later"]
    if kind == StockErrorKind.RESERVED:
        return ["later", "similar"]
    return ["reload", "retry"]


def describe(kind, available: int, *, food_name: str = "", locale: str = "en") -> StockErrorInfo:
    kind = StockErrorKind(kind)
    messages = _MESSAGES.get(locale, _MESSAGES["en"])
    suggestions = _SUGGESTIONS.get(locale, _SUGGESTIONS["en"])

    if kind == StockErrorKind.INSUFFICIENT and available == 0:
        template = messages["out_of_stock"]
    else:
        template = messages[kind]

    return StockErrorInfo(
        kind=kind,
        severity=severity_for(kind, available),
        http_status=_HTTP_STATUS[kind],
        user_message=template.format(food=food_name, available=available),
        suggestions=[suggestions[key].format(available=available) for key in suggestion_keys(kind, available)],
        retryable=kind == StockErrorKind.CONFLICT,
    )
