from __future__ import annotations

import pytest

from proxyconf.domain.errors import ConfigSynthesisError
from proxyconf.domain.model import EntityKind
from proxyconf.domain.reconciliation import RenderSettings, TemplateRenderer
from tests.helpers.streams import make_certificate, make_stream


def test_render_is_deterministic() -> None:
    renderer = TemplateRenderer()
    stream = make_stream(1, certificate=make_certificate(7))

    first = renderer.render(stream)
    second = renderer.render(stream)

    assert first.text == second.text
    assert first.artifact_id == "stream_1"
    assert first.filename == "stream_1.conf"
    assert first.kind is EntityKind.STREAM


def test_render_tcp_stream_without_certificate() -> None:
    text = TemplateRenderer().render(make_stream(1)).text

    assert "# 5000 TCP: true UDP: false" in text
    assert "listen 5000;" in text
    assert "listen [::]:5000;" in text
    assert "proxy_pass 10.0.0.2:22;" in text
    assert "ssl_certificate" not in text
    assert " udp;" not in text
    assert "include /data/nginx/custom/server_stream_tcp[.]conf;" in text


def test_render_emits_one_server_block_per_protocol() -> None:
    text = TemplateRenderer().render(make_stream(1, udp_forwarding=True)).text

    assert text.count("server {") == 2
    assert "listen 5000 udp;" in text
    assert "include /data/nginx/custom/server_stream_udp[.]conf;" in text


def test_render_udp_only_stream() -> None:
    text = TemplateRenderer().render(
        make_stream(1, tcp_forwarding=False, udp_forwarding=True)
    ).text

    assert text.count("server {") == 1
    assert "listen 5000 udp;" in text
    assert "listen 5000;" not in text


def test_render_embeds_certificate_paths() -> None:
    text = TemplateRenderer().render(make_stream(1, certificate=make_certificate(7))).text

    assert "listen 5000 ssl;" in text
    assert "ssl_certificate /etc/letsencrypt/live/npm-7/fullchain.pem;" in text
    assert "ssl_certificate_key /etc/letsencrypt/live/npm-7/privkey.pem;" in text
    assert "ssl_protocols TLSv1.2 TLSv1.3;" in text
    assert "secret" not in text


def test_render_settings_control_ipv6_and_custom_dir() -> None:
    renderer = TemplateRenderer(RenderSettings(ipv6=False, custom_dir="/etc/custom"))

    text = renderer.render(make_stream(1)).text

    assert "[::]" not in text
    assert "include /etc/custom/server_stream[.]conf;" in text


def test_render_rejects_stream_without_protocols() -> None:
    stream = make_stream(1, tcp_forwarding=False, udp_forwarding=False)

    with pytest.raises(ConfigSynthesisError):
        TemplateRenderer().render(stream)


def test_render_rejects_missing_forwarding_host() -> None:
    stream = make_stream(1, forwarding_host="")

    with pytest.raises(ConfigSynthesisError) as exc:
        TemplateRenderer().render(stream)

    assert "forwarding_host" in str(exc.value)


def test_render_rejects_unsaved_stream() -> None:
    with pytest.raises(ConfigSynthesisError):
        TemplateRenderer().render(make_stream(None))


def test_render_requires_resolved_certificate_relation() -> None:
    stream = make_stream(1)
    stream.certificate_id = 7

    with pytest.raises(ConfigSynthesisError) as exc:
        TemplateRenderer().render(stream)

    assert "#7" in str(exc.value)


def test_render_rejects_deleted_certificate() -> None:
    certificate = make_certificate(7)
    certificate.is_deleted = True

    with pytest.raises(ConfigSynthesisError):
        TemplateRenderer().render(make_stream(1, certificate=certificate))
