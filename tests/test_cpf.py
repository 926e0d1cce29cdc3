from gtreinamento.utils.cpf import (
    is_valid_cpf_length,
    mask_cpf,
    mask_cpf_restricted,
    normalize_cpf,
)


def test_normalize_strips_punctuation():
    assert normalize_cpf("111.222.333-44") == "11122233344"
    assert normalize_cpf(None) == ""
    assert normalize_cpf(12345) == "12345"


def test_length_rule_only():
    assert is_valid_cpf_length("111.222.333-44")
    assert is_valid_cpf_length("00000000000")
    assert not is_valid_cpf_length("1112223334")
    assert not is_valid_cpf_length("")


def test_mask_is_progressive():
    assert mask_cpf("111") == "111"
    assert mask_cpf("11122") == "111.22"
    assert mask_cpf("11122233") == "111.222.33"
    assert mask_cpf("11122233344") == "111.222.333-44"
    assert mask_cpf("1112223334499") == "111.222.333-44"


def test_restricted_mask_hides_middle_digits():
    assert mask_cpf_restricted("11122233344") == "111.***.***-44"
    assert mask_cpf_restricted("1112") == "111.***.***-**"
