"""命名空间解析：校验顺序、存在性与鉴权。"""

import pytest

from app.packages.registry.core.exceptions import (
    BadRequestException,
    NotFoundException,
    UnauthenticatedException,
    UnauthorizedException,
)
from app.packages.registry.services.auth_manager import Principal, StaticAuthManager
from app.packages.registry.services.namespace_service import namespace_service

ALICE = StaticAuthManager(Principal(id="alice", username="alice"))
BOB = StaticAuthManager(Principal(id="bob", username="bob"))
ADMIN = StaticAuthManager(Principal(id="root", username="root", roles=("admin",)))
ANONYMOUS = StaticAuthManager()


def test_resolve_dataset_returns_dataset_with_organization(db_session_fixture, make_dataset):
    dataset = make_dataset()
    resolved = namespace_service.resolve_dataset(
        db_session_fixture, ALICE, dataset.organization_slug, dataset.slug
    )
    assert resolved.id == dataset.id
    assert resolved.organization.slug == dataset.organization_slug


@pytest.mark.parametrize("org_slug", [None, "", "   "])
def test_missing_organization_slug(db_session_fixture, org_slug):
    with pytest.raises(BadRequestException):
        namespace_service.resolve_organization(db_session_fixture, ALICE, org_slug)


def test_invalid_organization_slug(db_session_fixture):
    with pytest.raises(BadRequestException) as exc_info:
        namespace_service.resolve_organization(db_session_fixture, ALICE, "Not Valid")
    assert exc_info.value.status_code == 400
    assert exc_info.value.data["org"] == "Not Valid"


def test_unknown_organization(db_session_fixture, new_slug):
    missing = new_slug("nowhere")
    with pytest.raises(NotFoundException):
        namespace_service.resolve_organization(db_session_fixture, ALICE, missing)
    assert namespace_service.resolve_organization(db_session_fixture, ALICE, missing, allow_missing=True) is None


def test_dataset_slug_is_validated_before_organization_lookup(db_session_fixture, new_slug):
    with pytest.raises(BadRequestException):
        namespace_service.resolve_dataset(db_session_fixture, ALICE, new_slug("nowhere"), "Bad Slug")
    with pytest.raises(BadRequestException):
        namespace_service.resolve_dataset(db_session_fixture, ALICE, new_slug("nowhere"), "")


def test_denied_without_identity(db_session_fixture, make_dataset):
    dataset = make_dataset()
    with pytest.raises(UnauthenticatedException) as exc_info:
        namespace_service.resolve_dataset(
            db_session_fixture, ANONYMOUS, dataset.organization_slug, dataset.slug
        )
    assert exc_info.value.status_code == 401
    assert exc_info.value.data["reason"] == "unauthenticated"


def test_foreign_organization_hides_dataset_existence(db_session_fixture, make_dataset):
    dataset = make_dataset(owner_id="alice")
    for ds_slug in (dataset.slug, "does-not-exist"):
        with pytest.raises(UnauthorizedException) as exc_info:
            namespace_service.resolve_dataset(db_session_fixture, BOB, dataset.organization_slug, ds_slug)
        assert exc_info.value.status_code == 403


def test_admin_and_public_access(db_session_fixture, make_dataset):
    private = make_dataset(owner_id="alice")
    public = make_dataset(owner_id="alice", is_public=True)
    assert namespace_service.resolve_dataset(
        db_session_fixture, ADMIN, private.organization_slug, private.slug
    ).id == private.id
    assert namespace_service.resolve_dataset(
        db_session_fixture, BOB, public.organization_slug, public.slug
    ).id == public.id


def test_public_dataset_is_readable_but_not_writable_by_others(db_session_fixture, make_dataset):
    public = make_dataset(owner_id="alice", is_public=True)
    with pytest.raises(UnauthorizedException):
        namespace_service.resolve_dataset(
            db_session_fixture, BOB, public.organization_slug, public.slug, manage=True
        )
    assert namespace_service.resolve_dataset(
        db_session_fixture, ALICE, public.organization_slug, public.slug, manage=True
    ).id == public.id


def test_unknown_dataset_in_authorized_organization(db_session_fixture, make_dataset):
    dataset = make_dataset()
    with pytest.raises(NotFoundException):
        namespace_service.resolve_dataset(db_session_fixture, ALICE, dataset.organization_slug, "missing-ds")
    assert namespace_service.resolve_dataset(
        db_session_fixture, ALICE, dataset.organization_slug, "missing-ds", allow_missing=True
    ) is None


def test_resolve_tag(db_session_fixture, make_dataset):
    dataset = make_dataset()
    assert namespace_service.resolve_tag(db_session_fixture, ALICE, dataset.tag).id == dataset.id
    with pytest.raises(BadRequestException):
        namespace_service.resolve_tag(db_session_fixture, ALICE, dataset.slug)
    with pytest.raises(BadRequestException):
        namespace_service.resolve_tag(db_session_fixture, ALICE, f"{dataset.organization_slug}/")
