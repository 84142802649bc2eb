import asyncio

import pytest

from ai_reader.common.errors import AllAttemptsExhausted, NoCredentialsConfigured
from ai_reader.common.models import ImageResult, ReaderSettings, RequestKind, RoutingState, TextPayload
from ai_reader.common.utils import credential_fingerprint
from ai_reader.db.state_store import InMemoryStateStore, JsonFileStateStore
from ai_reader.providers.google import RawResponse
from ai_reader.providers.model_catalog import ModelCatalog

from routing_helpers import image_ok, status, text_ok


def run(coro):
    return asyncio.run(coro)


def text_cursor(router, credential, stack_length=2):
    return router.route_state.cursor_for(credential, RequestKind.TEXT, stack_length)


# --- fallback disabled -------------------------------------------------------


def test_fallback_disabled_makes_exactly_one_attempt_on_failure(make_router):
    router, transport = make_router(
        {"B": status(429), "A": text_ok()},
        api_keys=["k1", "k2"],
        text_model="B",
        use_fallback=False,
    )

    with pytest.raises(AllAttemptsExhausted) as exc:
        run(router.request(RequestKind.TEXT, "hello"))

    assert len(transport.calls) == 1
    assert transport.calls[0]["model"] == "B"
    assert transport.calls[0]["credential"] == "k1"
    assert "Status 429" in str(exc.value)
    # No rotation without fallback
    assert router.credentials.active_index() == 0


def test_fallback_disabled_uses_preferred_model_outside_catalog(make_router):
    router, transport = make_router(
        {"my-custom-model": text_ok("custom")},
        text_model="my-custom-model",
        use_fallback=False,
    )

    assert run(router.request(RequestKind.TEXT, "hello")) == "custom"
    assert transport.models_called == ["my-custom-model"]


def test_fallback_disabled_uses_active_credential(make_router):
    store = InMemoryStateStore(RoutingState(active_credential=1))
    router, transport = make_router(
        {"A": status(500)}, store=store, api_keys=["k1", "k2"], use_fallback=False
    )

    with pytest.raises(AllAttemptsExhausted):
        run(router.request(RequestKind.TEXT, "hello"))

    assert [c["credential"] for c in transport.calls] == ["k2"]


# --- sticky / transient ------------------------------------------------------


def test_rate_limit_is_sticky_across_calls(make_router):
    router, transport = make_router({"A": status(429), "B": text_ok("from B")})

    assert run(router.request(RequestKind.TEXT, "first")) == "from B"
    assert transport.models_called == ["A", "B"]
    assert text_cursor(router, "key-one") == 1

    assert run(router.request(RequestKind.TEXT, "second")) == "from B"
    assert transport.models_called == ["A", "B", "B"]


def test_timeout_is_not_sticky_for_text(make_router, timeout_error):
    router, transport = make_router({"A": timeout_error, "B": text_ok("from B")})

    assert run(router.request(RequestKind.TEXT, "first")) == "from B"
    assert transport.models_called == ["A", "B"]
    assert text_cursor(router, "key-one") == 0

    run(router.request(RequestKind.TEXT, "second"))
    assert transport.models_called == ["A", "B", "A", "B"]


@pytest.mark.parametrize(
    "failure",
    [
        status(503),
        status(400, "Invalid argument"),
        RawResponse(status_code=200, body={"unexpected": True}),
    ],
)
def test_other_failures_are_sticky(make_router, failure):
    router, _ = make_router({"A": failure, "B": text_ok()})

    run(router.request(RequestKind.TEXT, "hello"))

    assert text_cursor(router, "key-one") == 1


def test_network_error_is_sticky(make_router, network_error):
    router, _ = make_router({"A": network_error, "B": text_ok()})

    run(router.request(RequestKind.TEXT, "hello"))

    assert text_cursor(router, "key-one") == 1


def test_success_leaves_cursor_on_working_model(make_router):
    router, transport = make_router({"A": status(500), "B": text_ok()})

    run(router.request(RequestKind.TEXT, "one"))
    run(router.request(RequestKind.TEXT, "two"))

    assert text_cursor(router, "key-one") == 1
    assert transport.models_called[-1] == "B"


def test_success_at_resumed_cursor_keeps_it(make_router):
    fingerprint = credential_fingerprint("key-one")
    store = InMemoryStateStore(RoutingState(cursors={"text": {fingerprint: 1}}))
    router, transport = make_router({"B": text_ok()}, store=store)

    run(router.request(RequestKind.TEXT, "hello"))

    assert transport.models_called == ["B"]
    assert text_cursor(router, "key-one") == 1


def test_exhausted_cursor_wraps_to_first_model(make_router):
    fingerprint = credential_fingerprint("key-one")
    store = InMemoryStateStore(RoutingState(cursors={"text": {fingerprint: 2}}))
    router, transport = make_router({"A": text_ok()}, store=store)

    run(router.request(RequestKind.TEXT, "hello"))

    assert transport.models_called == ["A"]


def test_cursor_beyond_shrunken_stack_restarts_at_zero(make_router):
    fingerprint = credential_fingerprint("key-one")
    store = InMemoryStateStore(RoutingState(cursors={"text": {fingerprint: 1}}))
    # Preferring B leaves a one-model stack, so the stored cursor is out of range.
    router, transport = make_router({"B": text_ok()}, store=store, text_model="B")

    run(router.request(RequestKind.TEXT, "hello"))

    assert transport.models_called == ["B"]


# --- credentials -------------------------------------------------------------


def test_rotates_to_next_credential_when_stack_exhausted(make_router):
    router, transport = make_router(
        {("k1", "B"): status(500), ("k2", "B"): text_ok("second key")},
        api_keys=["k1", "k2"],
        text_model="B",
    )

    assert run(router.request(RequestKind.TEXT, "hello")) == "second key"
    assert [(c["credential"], c["model"]) for c in transport.calls] == [("k1", "B"), ("k2", "B")]
    assert router.credentials.active_index() == 1

    run(router.request(RequestKind.TEXT, "again"))
    assert transport.calls[-1]["credential"] == "k2"
    assert len(transport.calls) == 3


def test_rotation_gives_next_credential_a_fresh_start(make_router):
    k2 = credential_fingerprint("k2")
    store = InMemoryStateStore(RoutingState(cursors={"text": {k2: 1}}))
    router, transport = make_router(
        {("k1", "A"): status(429), ("k1", "B"): status(429), ("k2", "A"): text_ok("fresh")},
        store=store,
        api_keys=["k1", "k2"],
    )

    assert run(router.request(RequestKind.TEXT, "hello")) == "fresh"
    assert [(c["credential"], c["model"]) for c in transport.calls] == [
        ("k1", "A"), ("k1", "B"), ("k2", "A"),
    ]


def test_all_credentials_exhausted_raises_with_last_error(make_router):
    router, transport = make_router(
        {("k1", "A"): status(500), ("k1", "B"): status(503),
         ("k2", "A"): status(429), ("k2", "B"): status(400, "Bad key")},
        api_keys=["k1", "k2"],
    )

    with pytest.raises(AllAttemptsExhausted) as exc:
        run(router.request(RequestKind.TEXT, "hello"))

    assert len(transport.calls) == 4
    assert exc.value.last_error == "Status 400: Bad key"
    assert str(exc.value) == "AI Text Generation failed. Last error: Status 400: Bad key"
    assert len(exc.value.attempts) == 4
    # The pointer went round to k1, whose cursor was reset for a fresh start.
    assert router.credentials.active_index() == 0
    assert text_cursor(router, "k1") == 0


def test_single_credential_exhaustion_wraps_on_next_call(make_router):
    router, transport = make_router({"A": [status(500), text_ok("recovered")], "B": status(500)})

    with pytest.raises(AllAttemptsExhausted):
        run(router.request(RequestKind.TEXT, "hello"))
    assert text_cursor(router, "key-one", stack_length=3) == 2

    assert run(router.request(RequestKind.TEXT, "again")) == "recovered"
    assert transport.models_called == ["A", "B", "A"]


def test_no_credentials_fails_fast(make_router):
    router, transport = make_router({"A": text_ok()}, api_keys=[], text_api_key="  ")

    with pytest.raises(NoCredentialsConfigured):
        run(router.request(RequestKind.TEXT, "hello"))

    assert transport.calls == []


def test_legacy_credential_is_used_when_list_empty(make_router):
    router, transport = make_router({"A": text_ok()}, api_keys=[], text_api_key="legacy-key")

    run(router.request(RequestKind.TEXT, "hello"))

    assert transport.calls[0]["credential"] == "legacy-key"


def test_explicit_settings_supply_the_credentials(make_router):
    router, transport = make_router({"A": text_ok("from explicit")}, api_keys=[])
    explicit = ReaderSettings(api_keys=["explicit-key"], text_model="A")

    assert run(router.request(RequestKind.TEXT, "hello", explicit)) == "from explicit"
    assert transport.calls[0]["credential"] == "explicit-key"


def test_explicit_settings_credentials_and_fallback_flag_go_together(make_router):
    router, transport = make_router(
        {"A": status(429), "B": text_ok()},
        api_keys=["provider-1", "provider-2"],
        use_fallback=True,
    )
    explicit = ReaderSettings(api_keys=["explicit-1", "explicit-2"], text_model="A", use_fallback=False)

    with pytest.raises(AllAttemptsExhausted):
        run(router.request(RequestKind.TEXT, "hello", explicit))

    assert [c["credential"] for c in transport.calls] == ["explicit-1"]


def test_active_pointer_is_taken_modulo_the_explicit_list(make_router):
    router, transport = make_router({"A": text_ok()}, api_keys=["p1", "p2", "p3"])
    run(router.credentials.set_active(2))
    explicit = ReaderSettings(api_keys=["e1", "e2"], text_model="A")

    run(router.request(RequestKind.TEXT, "hello", explicit))

    assert transport.calls[0]["credential"] == "e1"


def test_cursor_follows_credential_when_list_is_reordered(make_router):
    router, _ = make_router(
        {("k1", "A"): status(429), ("k1", "B"): text_ok()},
        api_keys=["k1", "k2"],
    )
    run(router.request(RequestKind.TEXT, "hello"))

    router.settings_box.update(api_keys=["k2", "k1"])

    assert text_cursor(router, "k1") == 1
    assert text_cursor(router, "k2") == 0


# --- image kind --------------------------------------------------------------


def test_image_timeout_is_sticky(make_router, timeout_error):
    router, transport = make_router({"imagen-A": timeout_error, "imagen-B": image_ok("QUJD")})

    result = run(router.request(RequestKind.IMAGE, {"prompt": "a cat"}))

    assert isinstance(result, ImageResult)
    assert result.data_url == "data:image/png;base64,QUJD"
    assert result.model == "imagen-B"
    assert router.route_state.cursor_for("key-one", RequestKind.IMAGE, 2) == 1
    assert transport.models_called == ["imagen-A", "imagen-B"]


def test_text_and_image_cursors_are_independent(make_router):
    router, _ = make_router({"imagen-A": status(429), "imagen-B": image_ok(), "A": text_ok()})

    run(router.request(RequestKind.IMAGE, "a cat"))
    run(router.request(RequestKind.TEXT, "hello"))

    assert router.route_state.cursor_for("key-one", RequestKind.IMAGE, 2) == 1
    assert text_cursor(router, "key-one") == 0


def test_image_failure_message(make_router):
    router, _ = make_router({"imagen-A": status(500), "imagen-B": status(500)})

    with pytest.raises(AllAttemptsExhausted) as exc:
        run(router.request(RequestKind.IMAGE, "a cat"))

    assert str(exc.value).startswith("AI Image Generation failed.")


# --- misc --------------------------------------------------------------------


def test_preferred_model_is_the_floor(make_router):
    router, transport = make_router({"C": status(500), "D": text_ok()}, text_model="C")
    router.catalog = ModelCatalog({"text": ["A", "B", "C", "D"], "image": []})

    run(router.request(RequestKind.TEXT, "hello"))

    assert transport.models_called == ["C", "D"]


def test_routing_state_survives_restart(make_router, tmp_path):
    path = str(tmp_path / "routing_state.json")
    first, _ = make_router({"A": status(429), "B": text_ok()}, store=JsonFileStateStore(path))
    run(first.request(RequestKind.TEXT, "hello"))

    second, transport = make_router({"B": text_ok("resumed")}, store=JsonFileStateStore(path))

    assert run(second.request(RequestKind.TEXT, "hello")) == "resumed"
    assert transport.models_called == ["B"]


def test_text_payload_reaches_transport(make_router):
    router, transport = make_router({"A": text_ok()}, request_timeout_secs=30)

    run(router.request(
        RequestKind.TEXT,
        TextPayload(prompt="Write a story", system_instruction="Be brief", expect_json=True),
    ))

    call = transport.calls[0]
    assert call["timeout"] == 30
    assert call["payload"]["contents"][0]["parts"][0]["text"] == "Write a story"
    assert call["payload"]["systemInstruction"]["parts"][0]["text"] == "Be brief"
    assert call["payload"]["generationConfig"]["responseMimeType"] == "application/json"


def test_route_reports_model_and_attempts(make_router):
    router, _ = make_router({"A": status(429), "B": text_ok("done")})

    result = run(router.route(RequestKind.TEXT, "hello"))

    assert result.value == "done"
    assert result.model == "B"
    assert result.credential_index == 0
    assert [a.outcome.kind.value for a in result.attempts] == ["rate_limited", "success"]


def test_cancellation_propagates(make_router):
    router, _ = make_router({"A": asyncio.CancelledError()})

    with pytest.raises(asyncio.CancelledError):
        run(router.request(RequestKind.TEXT, "hello"))

    assert text_cursor(router, "key-one") == 0
