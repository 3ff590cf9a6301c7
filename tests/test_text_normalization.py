import pytest

from pilotchat.utils.text_normalization import extract_meters, spoken_numbers_to_digits


@pytest.mark.parametrize(
    "text, expected",
    [
        ("take off to fifty meters", "take off to 50 meters"),
        ("fly north one hundred meters", "fly north 100 meters"),
        ("fly west twenty-five meters", "fly west 25 meters"),
        ("what is my height", "what is my height"),
        ("arm the drone", "arm the drone"),
    ],
)
def test_spoken_numbers_to_digits(text, expected):
    assert spoken_numbers_to_digits(text) == expected


def test_spoken_numbers_leaves_empty_text_alone():
    assert spoken_numbers_to_digits("") == ""


@pytest.mark.parametrize(
    "text, expected",
    [
        ("take off to 25 meters", 25),
        ("climb 7 meter", 7),
        ("go 12m north", 12),
        ("fly 2.5 m", 2.5),
        ("no distance here", None),
        ("10 miles", None),
    ],
)
def test_extract_meters(text, expected):
    assert extract_meters(text) == expected


def test_extract_meters_default():
    assert extract_meters("take off", default=10) == 10
