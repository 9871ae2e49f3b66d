import re

import pytest

from funclink.naming import MAX_NAME_LENGTH, fallback_name, normalize, transliterate

_VALID = re.compile(r"^[A-Za-z0-9_-]+$")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Звонок клиента", "zvonok_klienta"),
        ("Отправить в Telegram", "otpravit_v_telegram"),
        ("zvonok_klienta", "zvonok_klienta"),
        ("Марка   автомобиля!", "marka_avtomobilya"),
        ("  send-lead  ", "send-lead"),
        ("Щука и Ёж", "schuka_i_ezh"),
    ],
)
def test_normalize_known_names(raw, expected):
    assert normalize(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "!!!???", "中文名字", "___", "-_-", "Имя клиента" * 20, "a" * 200, "x" + "_" * 70 + "y"],
)
def test_normalize_is_total(raw):
    name = normalize(raw)
    assert name
    assert len(name) <= MAX_NAME_LENGTH
    assert _VALID.match(name)
    assert name[0] not in "_-" and name[-1] not in "_-"


@pytest.mark.parametrize(
    "raw", ["Звонок клиента", "Save Lead!!", "中文", "", "a" * 63 + " b", "Телефон - номер", "x-_-y"]
)
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


def test_truncation_strips_trailing_separator():
    raw = "a" * 63 + " tail"
    assert normalize(raw) == "a" * 63


def test_empty_result_uses_time_based_fallback():
    assert normalize("!!!").startswith("function_")
    assert fallback_name(0) == "function_0"
    assert fallback_name(36) == "function_10"


def test_transliterate_keeps_unmapped_characters():
    assert transliterate("Иван 42!") == "Ivan 42!"
