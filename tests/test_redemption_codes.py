import random

from riselocal_api.services.redemptions import (
    CODE_ALPHABET,
    CODE_PREFIX,
    generate_redemption_code,
    is_redemption_code,
    normalize_redemption_code,
)


def test_generated_codes_use_prefix_and_unambiguous_alphabet() -> None:
    rng = random.Random(42)
    codes = {generate_redemption_code(rng) for _ in range(200)}

    for code in codes:
        assert code.startswith(CODE_PREFIX)
        body = code[len(CODE_PREFIX):]
        assert len(body) == 6
        assert set(body) <= set(CODE_ALPHABET)
        assert is_redemption_code(code)

    assert len(codes) > 190
    for ambiguous in "01IO":
        assert ambiguous not in CODE_ALPHABET


def test_normalize_strips_whitespace_and_uppercases() -> None:
    assert normalize_redemption_code("  rl-ab 2c3d \n") == "RL-AB2C3D"
    assert normalize_redemption_code(None) == ""


def test_is_redemption_code_rejects_malformed_values() -> None:
    assert not is_redemption_code("RL-ABC")
    assert not is_redemption_code("XX-ABCDEF")
    assert not is_redemption_code("RL-ABCDE0")
    assert not is_redemption_code("")
    assert not is_redemption_code(None)
