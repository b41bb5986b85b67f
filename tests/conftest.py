import pytest
from racecup.app import create_app, db


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_cup(app):
    """Create a cup with three qualifiers and an empty leaderboard."""
    from racecup.models import Cup, Qualifier, Leaderboard
    cup = Cup(year=2024, month=5, name='June Cup 2024', current=True)
    db.session.add(cup)
    db.session.flush()
    for version in (1, 2, 3):
        db.session.add(Qualifier(cup_id=cup.id, version=version))
    db.session.add(Leaderboard(cup_id=cup.id))
    db.session.commit()
    return cup
