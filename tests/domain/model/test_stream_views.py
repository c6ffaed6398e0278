from __future__ import annotations

from proxyconf.domain.model import CertificateProvider, EntityKind, public_view
from tests.helpers.streams import make_certificate, make_stream


def test_stream_artifact_id_follows_kind_and_id() -> None:
    stream = make_stream(42)

    assert stream.kind is EntityKind.STREAM
    assert stream.artifact_id == "stream_42"
    assert stream.listen_spec == "5000"


def test_should_be_live_requires_enabled_and_not_deleted() -> None:
    assert make_stream().should_be_live
    assert not make_stream(enabled=False).should_be_live
    assert not make_stream(is_deleted=True).should_be_live


def test_certificate_paths_depend_on_provider() -> None:
    letsencrypt = make_certificate(3)
    uploaded = make_certificate(4, provider=CertificateProvider.OTHER)

    assert letsencrypt.certificate_path == "/etc/letsencrypt/live/npm-3/fullchain.pem"
    assert letsencrypt.certificate_key_path == "/etc/letsencrypt/live/npm-3/privkey.pem"
    assert uploaded.certificate_path == "/data/custom_ssl/npm-4/fullchain.pem"


def test_public_view_strips_certificate_meta_and_deleted_flag() -> None:
    stream = make_stream(certificate=make_certificate(7))
    stream.meta = {"engine_online": True, "engine_error": None}

    view = public_view(stream)
    payload = view.to_dict()

    assert "is_deleted" not in payload
    assert payload["meta"] == {"engine_online": True, "engine_error": None}
    assert view.certificate is not None
    assert view.certificate.meta == {}
    assert view.certificate.domain_names == ("example.com",)


def test_public_view_hides_deleted_certificate() -> None:
    certificate = make_certificate(7)
    certificate.is_deleted = True

    view = public_view(make_stream(certificate=certificate))

    assert view.certificate is None
    assert view.certificate_id == 7
