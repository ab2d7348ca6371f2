from app.services.abuse_gate import RATE_LIMIT_KEY, AbuseGate, rate_limit_key
from app.services.lead_store import StoreError


def _gate(storage, store, clock):
    return AbuseGate(storage=storage, store=store, rate_limit_seconds=60, clock=clock)


def test_honeypot_short_circuits_before_anything_else(storage, store, clock, valid_form) -> None:
    gate = _gate(storage, store, clock)
    bot = valid_form.model_copy(update={"honeypot": "http://spam.example"})

    decision = gate.evaluate(bot)

    assert decision.status == "honeypot"
    assert not decision.allowed
    assert store.query_calls == []


def test_rate_limit_window(storage, store, clock, valid_form) -> None:
    gate = _gate(storage, store, clock)
    assert not gate.is_rate_limited()

    gate.record_submission()
    assert storage.get(RATE_LIMIT_KEY) == str(int(clock.now * 1000))

    clock.advance(59)
    decision = gate.evaluate(valid_form)
    assert decision.status == "rate_limited"
    assert store.query_calls == []

    clock.advance(1)
    assert not gate.is_rate_limited()
    assert gate.evaluate(valid_form).status == "pass"


def test_garbage_rate_limit_value_is_ignored(storage, store, clock) -> None:
    storage.set(RATE_LIMIT_KEY, "ontem")
    assert not _gate(storage, store, clock).is_rate_limited()


def test_duplicate_email_uses_normalized_email(storage, store, clock, valid_form) -> None:
    store.rows.append({"id": "lead-1", "email": "ana@example.com"})
    decision = _gate(storage, store, clock).evaluate(valid_form)

    assert decision.status == "duplicate"
    assert decision.duplicate_check == "duplicate"
    assert store.query_calls == [{"email": "ana@example.com"}]


def test_duplicate_check_fails_open_but_is_marked_inconclusive(storage, store, clock, valid_form) -> None:
    store.query_error = StoreError("connection reset")
    decision = _gate(storage, store, clock).evaluate(valid_form)

    assert decision.allowed
    assert decision.duplicate_check == "inconclusive"


def test_unique_email_passes(storage, store, clock, valid_form) -> None:
    decision = _gate(storage, store, clock).evaluate(valid_form)
    assert decision.allowed
    assert decision.duplicate_check == "unique"


def test_rate_limit_is_per_visitor(storage, store, clock, valid_form) -> None:
    gate = _gate(storage, store, clock)
    gate.record_submission("visitante-a")

    assert storage.get(rate_limit_key("visitante-a")) == str(int(clock.now * 1000))
    assert storage.get(RATE_LIMIT_KEY) is None

    clock.advance(5)
    assert gate.evaluate(valid_form, "visitante-a").status == "rate_limited"
    assert gate.evaluate(valid_form, "visitante-b").status == "pass"


def test_rate_limit_key_format() -> None:
    assert rate_limit_key() == "last_lead_submit"
    assert rate_limit_key("10.0.0.7") == "last_lead_submit:10.0.0.7"
