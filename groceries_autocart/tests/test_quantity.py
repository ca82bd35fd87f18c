from groceries_autocart.log import LogSink
from groceries_autocart.quantity import Amount, convert, multiplier, parse_amount, units_to_add, weighted_target


def test_parse_amount_kg():
    assert parse_amount("Bulvės 2kg") == Amount(2.0, "kg")


def test_parse_amount_space_and_case():
    assert parse_amount("Milk 1 L") == Amount(1.0, "l")


def test_parse_amount_comma_decimal():
    assert parse_amount("Sūris 0,5 kg") == Amount(0.5, "kg")


def test_parse_amount_vnt_is_units():
    assert parse_amount("Kiaušiniai 10 vnt") == Amount(10.0, "units")


def test_parse_amount_none():
    assert parse_amount(None) is None
    assert parse_amount("just bread") is None
    assert parse_amount("5 lb steak") is None


def test_convert():
    assert convert(2, "kg", "g") == 2000
    assert convert(500, "g", "kg") == 0.5
    assert convert(1, "l", "l") == 1
    assert convert(1, "l", "kg") is None
    assert convert(1, "l", "ml") is None


def test_multiplier_same_unit():
    assert multiplier("2kg", "Potatoes 1kg") == 2


def test_multiplier_kg_to_grams():
    assert multiplier("2kg", "Sugar 500g") == 4


def test_multiplier_grams_to_kg():
    assert multiplier("1500g", "Flour 1kg") == 2


def test_multiplier_exact_pack():
    assert multiplier("1kg", "Rice 1kg") == 1


def test_multiplier_smaller_than_pack():
    assert multiplier("300g", "Cheese 500g") == 1


def test_multiplier_rounds_up():
    assert multiplier("2.5l", "Water 1l") == 3


def test_multiplier_float_ratio():
    assert multiplier("1.1kg", "Nuts 0.1kg") == 11


def test_multiplier_unit_mismatch():
    assert multiplier("2l", "Butter 1kg") == 1
    assert multiplier("2kg", "Eggs 10 vnt") == 1


def test_multiplier_no_pack_size():
    assert multiplier("2kg", "Fresh apples") == 1


def test_multiplier_no_desired():
    assert multiplier(None, "Potatoes 1kg") == 1


def test_multiplier_invalid_amount_warns():
    log = LogSink(echo=False)
    assert multiplier("0kg", "Potatoes 1kg", log=log) == 1
    assert multiplier("2kg", "Potatoes 0kg", log=log) == 1
    assert len(log.messages("warn")) == 2


def test_multiplier_negative_amount():
    log = LogSink(echo=False)
    assert multiplier("-3kg", "Potatoes 1kg", log=log) == 1
    assert log.messages("warn")


def test_units_to_add_plain_count():
    assert units_to_add("milk", 3, "Milk 1L") == 3


def test_units_to_add_with_amount():
    assert units_to_add("potatoes 3kg", 1, "Potatoes 1kg") == 3


def test_range_dash_is_not_a_minus_sign():
    assert parse_amount("Bulvės 2-5kg") == Amount(5.0, "kg")
    assert parse_amount("-3kg") == Amount(-3.0, "kg")

    log = LogSink(echo=False)
    assert multiplier("10kg", "Bulvės 2-5kg", log=log) == 2
    assert log.messages("warn") == []


def test_weighted_target():
    assert weighted_target("bulvės 1500g", 1, "Bulvės, kg") == 1.5
    assert weighted_target("bulvės", 3, "Bulvės, kg") == 3.0
    assert weighted_target("bulvės 2kg", 1, "Bulvės 2kg") is None
    assert weighted_target("milk", 2, "Milk") is None
    assert weighted_target("pienas 1l", 1, "Pienas") is None
