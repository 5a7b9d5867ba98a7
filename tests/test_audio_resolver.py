# -*- coding: utf-8 -*-
import asyncio
import logging
import time

import pytest

from core.audio_resolver import AudioCandidate, AudioRequest, AudioSourceResolver, UrlCandidate
from core.errors import AllSourcesExhausted, ProbeError, SourceFetchError
from tests.conftest import fake_decoder


@pytest.fixture
async def resolver():
    resolver = AudioSourceResolver(decoder=fake_decoder, max_bytes=64 * 1024)
    yield resolver
    await resolver.close()


def url(server, path):
    return str(server.make_url(path))


@pytest.mark.asyncio
async def test_falls_back_past_404_and_short_circuits(resolver, audio_server, caplog):
    request = AudioRequest.from_urls([
        url(audio_server, '/missing'),
        url(audio_server, '/clip'),
        url(audio_server, '/never'),
    ], attempt_timeout=2)

    with caplog.at_level(logging.WARNING, logger='VoiceBot.Fallback'):
        resource = await resolver.resolve(request)

    assert resource.label.endswith('/clip')
    assert resource.format == "wav"
    assert audio_server.hits == {"clip": 1, "never": 0}
    assert any("404" in record.getMessage() for record in caplog.records)
    resource.close()
    assert resource.closed


@pytest.mark.asyncio
async def test_all_failing_candidates_raise_all_sources_exhausted(resolver, audio_server):
    request = AudioRequest.from_urls([
        url(audio_server, '/missing'),
        url(audio_server, '/html'),
        url(audio_server, '/empty'),
    ], attempt_timeout=2)

    with pytest.raises(AllSourcesExhausted) as excinfo:
        await resolver.resolve(request)

    errors = [type(exc) for _, exc in excinfo.value.failures]
    assert errors == [SourceFetchError, ProbeError, SourceFetchError]


@pytest.mark.asyncio
async def test_slow_candidates_are_bounded_by_attempt_timeout(resolver, audio_server):
    request = AudioRequest.from_urls([url(audio_server, '/slow'), url(audio_server, '/slow')], attempt_timeout=0.2)

    started = time.monotonic()
    with pytest.raises(AllSourcesExhausted):
        await resolver.resolve(request)
    assert time.monotonic() - started < 2


@pytest.mark.asyncio
async def test_oversized_body_is_a_candidate_failure(audio_server):
    resolver = AudioSourceResolver(decoder=fake_decoder, max_bytes=16)
    try:
        with pytest.raises(AllSourcesExhausted) as excinfo:
            await resolver.resolve(AudioRequest.from_urls([url(audio_server, '/clip')]))
    finally:
        await resolver.close()
    assert isinstance(excinfo.value.failures[0][1], SourceFetchError)


@pytest.mark.asyncio
async def test_no_candidates(resolver):
    with pytest.raises(AllSourcesExhausted):
        await resolver.resolve(AudioRequest([]))


@pytest.mark.asyncio
async def test_custom_candidate_runs_through_probe_and_decoder(resolver):
    class StaticCandidate(AudioCandidate):
        label = "static"

        async def fetch(self, http, max_bytes):
            return b"OggS" + b"\x00" * 60

    decoded = []

    def recording_decoder(data, fmt, label):
        decoded.append((fmt, label))
        return fake_decoder(data, fmt, label)

    resolver._decoder = recording_decoder
    resource = await resolver.resolve(AudioRequest([StaticCandidate()]))
    assert resource.format == "ogg"
    assert decoded == [("ogg", "static")]


def test_url_candidate_label_is_its_url():
    assert UrlCandidate("https://example.com/a.mp3").label == "https://example.com/a.mp3"


@pytest.mark.asyncio
async def test_slow_decode_is_not_a_fetch_timeout(audio_server):
    def slow_decoder(data, fmt, label):
        time.sleep(0.5)
        return fake_decoder(data, fmt, label)

    resolver = AudioSourceResolver(decoder=slow_decoder, decode_timeout=5)
    try:
        resource = await resolver.resolve(AudioRequest.from_urls([url(audio_server, '/clip')], attempt_timeout=0.2))
    finally:
        await resolver.close()
    assert resource.label.endswith('/clip')
    resource.close()


@pytest.mark.asyncio
async def test_decode_past_its_bound_is_released_when_it_finishes(audio_server):
    produced = []

    def slow_decoder(data, fmt, label):
        time.sleep(0.3)
        source, buffer = fake_decoder(data, fmt, label)
        produced.append(buffer)
        return source, buffer

    resolver = AudioSourceResolver(decoder=slow_decoder, decode_timeout=0.05)
    try:
        with pytest.raises(AllSourcesExhausted) as excinfo:
            await resolver.resolve(AudioRequest.from_urls([url(audio_server, '/clip')], attempt_timeout=2))
    finally:
        await resolver.close()
    assert isinstance(excinfo.value.failures[0][1], ProbeError)

    for _ in range(50):
        if produced and produced[0].closed:
            break
        await asyncio.sleep(0.05)
    assert produced and produced[0].closed


@pytest.mark.asyncio
async def test_fetch_timeout_is_reported_as_fetch_failure(resolver, audio_server):
    with pytest.raises(AllSourcesExhausted) as excinfo:
        await resolver.resolve(AudioRequest.from_urls([url(audio_server, '/slow')], attempt_timeout=0.1))
    assert isinstance(excinfo.value.failures[0][1], SourceFetchError)
