"""Tests for environment-driven settings."""

from orderbook.config import DEFAULT_DATABASE_URL, DEFAULT_NFT_CONTRACT, DEFAULT_SEAPORT_CONTRACT, Settings


def test_defaults_when_environment_is_empty():
    s = Settings.from_env({})
    assert s.database_url == DEFAULT_DATABASE_URL
    assert s.nft_contract_address == DEFAULT_NFT_CONTRACT
    assert s.marketplace_contract_address == DEFAULT_SEAPORT_CONTRACT
    assert s.list_limit_max == 500
    assert s.api_max_bytes == 10 * 1024 * 1024
    assert s.cors_origins == ("*",)
    assert s.port == 3000
    assert s.workers >= 2


def test_environment_overrides():
    s = Settings.from_env({
        "DATABASE_URL": "sqlite:///x.db",
        "NFT_CONTRACT_ADDRESS": "0xnft",
        "SEAPORT_CONTRACT_ADDRESS": "0xsea",
        "LIST_LIMIT_MAX": "50",
        "CORS_ORIGINS": "https://a.example, https://b.example",
        "PORT": "8080",
        "UVICORN_WORKERS": "3",
        "LOG_LEVEL": "debug",
    })
    assert s.database_url == "sqlite:///x.db"
    assert s.nft_contract_address == "0xnft"
    assert s.marketplace_contract_address == "0xsea"
    assert s.list_limit_max == 50
    assert s.cors_origins == ("https://a.example", "https://b.example")
    assert s.port == 8080
    assert s.workers == 3
    assert s.log_level == "debug"


def test_contract_addresses_are_stamped_on_orders(engine, settings):
    from dataclasses import replace

    from orderbook.repo import OrderRepository

    repo = OrderRepository(engine, replace(settings, nft_contract_address="0xnft", marketplace_contract_address="0xsea"))
    order = repo.upsert_order({"tokenId": "1", "price": 1, "sellerAddress": "0xa", "seaportOrder": {}})
    assert order.nft_contract == "0xnft"
    assert order.marketplace_contract == "0xsea"
