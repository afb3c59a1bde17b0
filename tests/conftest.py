"""
Shared fixtures: in-memory catalog database, seeded providers, fake AI.
Run with: python -m pytest tests/ -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.database import build_engine
from db.models import (
    Base, AiraloPackage, Destination, EsimAccessPackage, EsimGoPackage, MayaPackage, Provider,
)
from services.ai_client import JSONResult


# ─── Database ────────────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def destinations(session):
    japan = Destination(name="Japan", slug="japan", country_code="JP")
    france = Destination(name="France", slug="france", country_code="FR")
    session.add_all([japan, france])
    session.commit()
    return {"JP": japan, "FR": france}


@pytest.fixture
def providers(session):
    rows = {
        "airalo": Provider(name="Airalo", slug="airalo", enabled=True, pricing_margin="20.00",
                           failover_priority=1),
        "esim-access": Provider(name="eSIM Access", slug="esim-access", enabled=True,
                                pricing_margin="10.00", failover_priority=2),
        "esim-go": Provider(name="eSIM Go", slug="esim-go", enabled=True, pricing_margin="25.00",
                            failover_priority=3),
        "maya": Provider(name="Maya Mobile", slug="maya", enabled=True, pricing_margin="15.00",
                         failover_priority=4),
    }
    session.add_all(rows.values())
    session.commit()
    return rows


@pytest.fixture
def add_package(session, providers):
    """
    Insert a provider-side package row. `price` goes to the provider's
    wholesale cost column; everything else is passed through.
    """
    counter = {"n": 0}

    def _add(provider_slug, slug, data_amount, validity, price="1.00", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        provider = providers[provider_slug]
        fields = dict(
            provider_id=provider.id,
            slug=slug,
            title=kwargs.pop("title", slug),
            data_amount=data_amount,
            validity=validity,
            type=kwargs.pop("type", "local"),
            currency="USD",
        )
        fields.update(kwargs)
        if provider_slug == "airalo":
            fields.setdefault("airalo_id", f"airalo-{n}")
            fields.setdefault("airalo_price", price)
            fields.setdefault("price", price if price is not None else "")
            row = AiraloPackage(**fields)
        elif provider_slug == "esim-access":
            row = EsimAccessPackage(esim_access_id=f"access-{n}", wholesale_price=price, **fields)
        elif provider_slug == "esim-go":
            row = EsimGoPackage(esim_go_id=f"go-{n}", wholesale_price=price, **fields)
        else:
            fields.setdefault("maya_id", f"maya-{n}")
            row = MayaPackage(wholesale_price=price, **fields)
        session.add(row)
        session.commit()
        return row

    return _add


# ─── Fake AI ─────────────────────────────────────────────────────────────────

class FakeAIClient:
    """Stands in for AIClient; replies come from a queue or a default."""

    def __init__(self, replies=None, default=None, ready=True):
        self.replies = list(replies or [])
        self.default = default
        self.ready = ready
        self.prompts = []

    def is_ready(self):
        return self.ready

    def chat_completion_json(self, prompt, system_prompt=None, **options):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else self.default
        if reply is None:
            return JSONResult(success=False, error="No reply scripted")
        if isinstance(reply, Exception):
            return JSONResult(success=False, error=str(reply))
        return JSONResult(success=True, data=reply)


@pytest.fixture
def fake_ai():
    return FakeAIClient(
        default={
            "reasoning": "Solid value for a short trip.",
            "strengths": ["Cheap", "Fast network", "Easy setup", "Extra point"],
            "weaknesses": ["Data only"],
        }
    )


class FakeCompletions:
    """Mimics `OpenAI().chat.completions`; each call consumes the next outcome."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=outcome))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=50),
        )


def fake_openai(outcomes):
    completions = FakeCompletions(outcomes)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


class StatusError(Exception):
    def __init__(self, status_code, message="request failed"):
        super().__init__(message)
        self.status_code = status_code


def as_json(data):
    return json.dumps(data)
