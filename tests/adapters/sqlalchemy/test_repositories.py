from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from proxyconf.domain.errors import InternalConsistencyError, NotFoundError, ValidationError
from proxyconf.domain.model import Certificate
from proxyconf.domain.ports import VisibilityFilter

if TYPE_CHECKING:
    from collections.abc import Callable

    from proxyconf.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork

    UnitOfWorkFactory = Callable[[], SqlAlchemyUnitOfWork]


def _insert(
    factory: UnitOfWorkFactory,
    port: int,
    *,
    owner_id: int = 1,
    **fields: object,
) -> int:
    with factory() as uow:
        stream = uow.repositories.streams.insert(
            {
                "owner_id": owner_id,
                "incoming_port": port,
                "forwarding_host": "10.0.0.2",
                "forwarding_port": 22,
                **fields,
            }
        )
        uow.commit()
        assert stream.id is not None
        return stream.id


def _add_certificate(factory: UnitOfWorkFactory) -> int:
    with factory() as uow:
        certificate = uow.repositories.certificates.add(
            Certificate(owner_id=1, domain_names=["example.com"])
        )
        uow.commit()
        assert certificate.id is not None
        return certificate.id


def test_insert_rejects_unknown_columns(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    with sqlite_unit_of_work() as uow, pytest.raises(ValidationError, match="domain_names"):
        uow.repositories.streams.insert(
            {
                "owner_id": 1,
                "incoming_port": 5000,
                "forwarding_host": "10.0.0.2",
                "forwarding_port": 22,
                "domain_names": ["example.com"],
            }
        )


def test_patch_updates_fields_and_modified_on(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    stream_id = _insert(sqlite_unit_of_work, 5000)
    with sqlite_unit_of_work() as uow:
        before = uow.repositories.streams.get_by_id(stream_id)
        assert before is not None
        created_on = before.created_on

    with sqlite_unit_of_work() as uow:
        patched = uow.repositories.streams.patch_by_id(stream_id, {"forwarding_port": 2222})
        uow.commit()
        assert patched.forwarding_port == 2222
        assert patched.modified_on is not None
        assert created_on is not None
        assert patched.modified_on >= created_on


def test_patch_missing_stream_raises(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    with sqlite_unit_of_work() as uow, pytest.raises(NotFoundError):
        uow.repositories.streams.patch_by_id(404, {"enabled": False})


def test_deleted_rows_only_visible_through_audit_lookup(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    stream_id = _insert(sqlite_unit_of_work, 5000, is_deleted=True)

    with sqlite_unit_of_work() as uow:
        streams = uow.repositories.streams
        assert streams.get_by_id(stream_id) is None
        assert streams.list_all() == []
        assert streams.count_all() == 0
        audited = streams.get_including_deleted(stream_id)
        assert audited is not None
        assert audited.is_deleted is True


def test_visibility_filter_limits_rows_to_owner(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    mine = _insert(sqlite_unit_of_work, 5000, owner_id=1)
    theirs = _insert(sqlite_unit_of_work, 6000, owner_id=2)
    owner_only = VisibilityFilter.owned_by(1)

    with sqlite_unit_of_work() as uow:
        streams = uow.repositories.streams
        assert streams.get_by_id(theirs, visibility=owner_only) is None
        assert streams.get_by_id(mine, visibility=owner_only) is not None
        assert [s.id for s in streams.list_all(visibility=owner_only)] == [mine]
        assert streams.count_all(visibility=owner_only) == 1
        assert streams.count_all(visibility=VisibilityFilter.everything()) == 2


def test_list_all_orders_by_port_and_searches_literally(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    for port in (8080, 80, 1080, 443):
        _insert(sqlite_unit_of_work, port)

    with sqlite_unit_of_work() as uow:
        streams = uow.repositories.streams
        assert [s.incoming_port for s in streams.list_all()] == [80, 443, 1080, 8080]
        assert [s.incoming_port for s in streams.list_all(search="80")] == [80, 1080, 8080]
        assert streams.list_all(search="%") == []
        assert streams.list_all(search="_0") == []


def test_expand_loads_certificate_on_request(sqlite_unit_of_work: UnitOfWorkFactory) -> None:
    certificate_id = _add_certificate(sqlite_unit_of_work)
    stream_id = _insert(sqlite_unit_of_work, 5000, certificate_id=certificate_id)

    with sqlite_unit_of_work() as uow:
        streams = uow.repositories.streams
        plain = streams.get_by_id(stream_id)
        assert plain is not None
        assert plain.certificate is None
        assert plain.certificate_id == certificate_id

        expanded = streams.get_by_id(stream_id, expand=("certificate",))
        assert expanded is not None
        assert expanded.certificate is not None
        assert expanded.certificate.domain_names == ["example.com"]

        with pytest.raises(ValidationError, match="owner"):
            streams.get_by_id(stream_id, expand=("owner",))


def test_certificate_repository_refuses_stored_certificates(
    sqlite_unit_of_work: UnitOfWorkFactory,
) -> None:
    certificate_id = _add_certificate(sqlite_unit_of_work)

    with sqlite_unit_of_work() as uow:
        certificates = uow.repositories.certificates
        stored = certificates.get_by_id(certificate_id)
        assert stored is not None
        assert certificates.get_by_id(certificate_id + 1) is None
        with pytest.raises(InternalConsistencyError):
            certificates.add(Certificate(id=certificate_id, owner_id=1))
