import pytest
from werkzeug.security import check_password_hash

from ctrltab import seed_admin
from ctrltab.extensions import db
from ctrltab.models import Collection, Link, Section, User
from ctrltab.services.common import optional_int
from ctrltab.services.errors import (
    AuthenticationError,
    AuthorizationError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from ctrltab.services.ordering import LINKS, SECTIONS, OrderingEngine
from ctrltab.services.ownership import OwnershipResolver
from ctrltab.services.users import UserDirectory


def _user(username, is_admin=False):
    user = User(username=username, is_admin=is_admin, preferences={})
    user.set_password("secret1")
    db.session.add(user)
    db.session.commit()
    return user


def _tree(user):
    collection = Collection(user_id=user.id, name="C", sort_order=0)
    section = Section(collection=collection, name="S", sort_order=0)
    link = Link(section=section, title="L", url="https://l.example", sort_order=0)
    db.session.add_all([collection, section, link])
    db.session.commit()
    return collection, section, link


def test_ownership_walks_up_to_collection_owner(app):
    with app.app_context():
        alice = _user("alice")
        bob = _user("bob")
        collection, section, link = _tree(alice)
        resolver = OwnershipResolver(db.session)

        assert resolver.owns_collection(collection.id, alice.id)
        assert resolver.owns_section(section.id, alice.id)
        assert resolver.owns_link(link.id, alice.id)
        assert not resolver.owns_link(link.id, bob.id)
        assert not resolver.owns_section(section.id, bob.id)
        assert not resolver.owns_link(9999, alice.id)
        assert resolver.owner_of(Link, link.id) == alice.id


def test_require_reports_foreign_and_missing_alike(app):
    with app.app_context():
        alice = _user("alice")
        bob = _user("bob")
        _, section, _ = _tree(alice)
        resolver = OwnershipResolver(db.session)

        assert resolver.require(Section, section.id, alice.id) is section
        with pytest.raises(AuthorizationError) as foreign:
            resolver.require(Section, section.id, bob.id)
        with pytest.raises(NotFoundError) as missing:
            resolver.require(Section, 9999, bob.id)

        assert foreign.value.status_code == missing.value.status_code == 404
        assert foreign.value.message == missing.value.message


def test_next_order_starts_at_zero_and_follows_max(app):
    with app.app_context():
        alice = _user("alice")
        collection, section, _ = _tree(alice)
        engine = OrderingEngine(db.session)

        assert engine.next_order(SECTIONS, 9999) == 0
        db.session.add(Link(section_id=section.id, title="x", url="u", sort_order=7))
        db.session.commit()
        assert engine.next_order(LINKS, section.id) == 8


def test_reorder_leaves_missing_ids_and_breaks_ties_by_id(app):
    with app.app_context():
        alice = _user("alice")
        _, section, first = _tree(alice)
        second = Link(section_id=section.id, title="2", url="u", sort_order=1)
        third = Link(section_id=section.id, title="3", url="u", sort_order=2)
        db.session.add_all([second, third])
        db.session.commit()
        engine = OrderingEngine(db.session)

        engine.reorder(LINKS, section.id, [third.id, "%d" % second.id])

        links = engine.siblings(LINKS, section.id)
        orders = {link.id: link.sort_order for link in links}
        assert orders == {third.id: 0, second.id: 1, first.id: 0}
        assert [link.id for link in engine.siblings(LINKS, section.id)] == [
            first.id,
            third.id,
            second.id,
        ]


def test_reorder_is_all_or_nothing(app, monkeypatch):
    with app.app_context():
        alice = _user("alice")
        _, section, first = _tree(alice)
        second = Link(section_id=section.id, title="2", url="u", sort_order=1)
        db.session.add(second)
        db.session.commit()
        engine = OrderingEngine(db.session)

        def broken_commit():
            raise RuntimeError("disk full")

        monkeypatch.setattr(db.session, "commit", broken_commit)
        with pytest.raises(RuntimeError):
            engine.reorder(LINKS, section.id, [second.id, first.id])
        monkeypatch.undo()

        links = engine.siblings(LINKS, section.id)
        orders = {link.id: link.sort_order for link in links}
        assert orders == {first.id: 0, second.id: 1}


def test_reorder_rejects_malformed_order(app):
    with app.app_context():
        engine = OrderingEngine(db.session)
        for bad in (None, "1,2", [True], [{"id": 1}], [1.5]):
            with pytest.raises(ValidationError):
                engine.reorder(SECTIONS, 1, bad)


def test_last_admin_cannot_be_deleted_by_anyone(app):
    with app.app_context():
        directory = UserDirectory(db.session)
        admin = User.query.filter_by(is_admin=True).one()
        member = _user("member")

        with pytest.raises(InvariantViolation):
            directory.delete_user(member, admin.id)
        with pytest.raises(InvariantViolation):
            directory.delete_user(admin, admin.id)
        assert db.session.get(User, admin.id) is not None


def test_admin_may_demote_another_admin(app):
    with app.app_context():
        directory = UserDirectory(db.session)
        admin = User.query.filter_by(is_admin=True).one()
        other = _user("other", is_admin=True)

        directory.update_user(admin, other.id, {"is_admin": False})

        assert directory.admin_count() == 1


def test_seed_creates_admin_and_adopts_ownerless_collections(app):
    with app.app_context():
        db.session.query(User).delete()
        db.session.add(Collection(user_id=None, name="legacy", sort_order=0))
        db.session.commit()

        admin = seed_admin(app)

        assert admin.is_admin
        assert admin.check_password("admin-secret")
        assert Collection.query.filter_by(user_id=None).count() == 0
        assert Collection.query.one().user_id == admin.id


def test_seed_reconciles_existing_admin_with_configuration(app):
    with app.app_context():
        admin = User.query.filter_by(is_admin=True).one()
        admin_id = admin.id
        app.config["ADMIN_USERNAME"] = "root"
        app.config["ADMIN_PASSWORD"] = "changed-secret"

        seed_admin(app)
        seed_admin(app)

        admin = db.session.get(User, admin_id)
        assert admin.username == "root"
        assert admin.check_password("changed-secret")
        assert User.query.filter_by(is_admin=True).count() == 1


def test_seed_does_not_steal_a_taken_username(app):
    with app.app_context():
        _user("root")
        app.config["ADMIN_USERNAME"] = "root"

        admin = seed_admin(app)

        assert admin.username == "admin"
        assert User.query.filter_by(username="root").one().is_admin is False


def test_seed_promotes_existing_user_with_configured_username(app):
    with app.app_context():
        db.session.query(User).delete()
        db.session.commit()
        root = _user("root")
        root_id = root.id
        app.config["ADMIN_USERNAME"] = "root"

        admin = seed_admin(app)

        assert admin.id == root_id
        assert admin.is_admin
        assert admin.check_password("admin-secret")
        assert User.query.count() == 1


def test_unknown_username_still_pays_for_a_hash_check(app, monkeypatch):
    checked = []

    def counting_check(pwhash, password):
        checked.append(password)
        return check_password_hash(pwhash, password)

    monkeypatch.setattr("ctrltab.services.users.check_password_hash", counting_check)
    monkeypatch.setattr("ctrltab.models.check_password_hash", counting_check)
    with app.app_context():
        _user("alice")
        directory = UserDirectory(db.session)

        with pytest.raises(AuthenticationError):
            directory.authenticate("nobody", "secret1")
        with pytest.raises(AuthenticationError):
            directory.authenticate("alice", "wrong-one")

    assert checked == ["secret1", "wrong-one"]


@pytest.mark.parametrize("value", [1.9, -0.5, float("inf"), True, "top"])
def test_optional_int_rejects_non_integers(value):
    with pytest.raises(ValidationError):
        optional_int(value, "sort_order")


def test_optional_int_accepts_whole_numbers():
    assert optional_int(2.0, "sort_order") == 2
    assert optional_int("3", "sort_order") == 3
    assert optional_int(None, "sort_order") is None
