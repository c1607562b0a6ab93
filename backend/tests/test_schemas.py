from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from gatelink.schemas import LinkCreate, NftPolicy, TokenPolicy, UnlockRequest, parse_access_policy
from gatelink.utils.validators import is_valid_address, is_valid_url


CONTRACT = "0x" + "a" * 40


# -------------------------------
# URL and address validation
# -------------------------------

@pytest.mark.parametrize("url", [
    "https://example.com",
    "http://example.com/path?q=1#frag",
    "https://sub.example.co.uk:8443/a/b",
])
def test_valid_urls(url):
    assert is_valid_url(url) == (True, "")


@pytest.mark.parametrize("url, message", [
    ("", "URL cannot be empty"),
    ("not-a-url", "Invalid URL format"),
    ("https://", "Invalid URL format"),
    ("ftp://example.com/file", "Only HTTP and HTTPS URLs are allowed"),
    ("javascript:alert(1)", "Invalid URL format"),
    ("https://example.com/" + "a" * 2048, "URL is too long (max 2048 characters)"),
])
def test_invalid_urls(url, message):
    assert is_valid_url(url) == (False, message)


def test_address_shape():
    assert is_valid_address(CONTRACT)
    assert is_valid_address("0x" + "AbC123" * 6 + "dEf0")
    assert not is_valid_address("0x" + "a" * 39)
    assert not is_valid_address("a" * 42)
    assert not is_valid_address("0x" + "g" * 40)
    assert not is_valid_address("")


# -------------------------------
# Access policies
# -------------------------------

def test_parse_token_policy():
    policy = parse_access_policy({"type": "token", "contractAddress": CONTRACT, "minBalance": "100", "chainId": 8453})

    assert isinstance(policy, TokenPolicy)
    assert policy.min_balance == "100"
    assert policy.chain_id == 8453


def test_parse_nft_policy_defaults_to_base():
    policy = parse_access_policy({"type": "nft", "contractAddress": CONTRACT, "minBalance": 2})

    assert isinstance(policy, NftPolicy)
    assert policy.min_balance == "2"
    assert policy.chain_id == 8453


@pytest.mark.parametrize("raw", [None, {}])
def test_empty_policy_parses_to_none(raw):
    assert parse_access_policy(raw) is None


@pytest.mark.parametrize("raw", [
    {"type": "erc1155", "contractAddress": CONTRACT, "minBalance": "1"},
    {"type": "token", "contractAddress": "0x1234", "minBalance": "1"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "-1"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "lots"},
    {"type": "nft", "contractAddress": CONTRACT, "minBalance": "1.5"},
    {"type": "nft", "contractAddress": CONTRACT, "minBalance": True},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "1e999990"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "1E5"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "Infinity"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "1_000"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "100\n"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": ".5"},
    {"type": "token", "contractAddress": CONTRACT, "minBalance": "9" * 79},
    {"type": "nft", "contractAddress": CONTRACT, "minBalance": "9" * 79},
    {"contractAddress": CONTRACT, "minBalance": "1"},
])
def test_malformed_policies_are_rejected(raw):
    with pytest.raises(ValidationError):
        parse_access_policy(raw)


def test_policy_storage_shape():
    policy = parse_access_policy({"type": "token", "contractAddress": CONTRACT, "minBalance": "0.5"})

    assert policy.to_storage() == {
        "type": "token",
        "contractAddress": CONTRACT,
        "minBalance": "0.5",
        "chainId": 8453,
    }


# -------------------------------
# Request bodies
# -------------------------------

def test_link_create_camel_case_fields():
    body = LinkCreate.model_validate({
        "url": "https://example.com",
        "expiresIn": 7,
        "creatorWallet": CONTRACT,
        "accessPolicy": {"type": "nft", "contractAddress": CONTRACT, "minBalance": "1"},
    })

    assert body.expires_in == 7
    assert body.creator_wallet == CONTRACT
    assert isinstance(body.access_policy, NftPolicy)


def test_link_create_naive_expiry_is_utc():
    body = LinkCreate.model_validate({"url": "https://example.com", "expiresAt": "2030-01-01T00:00:00"})

    assert body.expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("field, value", [
    ("expiresIn", 0),
    ("expiresIn", -3),
    ("expiresIn", 10_000),
    ("creatorWallet", "vitalik.eth"),
    ("expiresAt", "next tuesday"),
])
def test_link_create_rejects_bad_fields(field, value):
    with pytest.raises(ValidationError):
        LinkCreate.model_validate({"url": "https://example.com", field: value})


def test_unlock_request_requires_address():
    with pytest.raises(ValidationError):
        UnlockRequest.model_validate({"shortCode": "abc1234", "holderAddress": "0xnope"})


def test_amounts_up_to_uint256_width_are_accepted():
    token = parse_access_policy({"type": "token", "contractAddress": CONTRACT, "minBalance": "9" * 78 + "." + "1" * 78})
    nft = parse_access_policy({"type": "nft", "contractAddress": CONTRACT, "minBalance": "9" * 78})

    assert token.min_balance.startswith("9" * 78)
    assert nft.min_balance == "9" * 78
