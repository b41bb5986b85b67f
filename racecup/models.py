from racecup.app import db
from racecup.time_utils import utcnow_naive, isoformat_or_none


class Player(db.Model):
    """A racer, keyed by their game login."""
    id = db.Column(db.String(120), primary_key=True)
    name = db.Column(db.String(200), default='')
    zone = db.Column(db.String(200), default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'zone': self.zone,
        }


class Cup(db.Model):
    """A monthly cup: several qualifiers, a final and one leaderboard."""
    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)  # 0-11
    name = db.Column(db.String(100), nullable=False)
    current = db.Column(db.Boolean, default=False, nullable=False)
    public = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    qualifiers = db.relationship(
        'Qualifier',
        backref='cup',
        order_by='Qualifier.version',
        cascade='all, delete-orphan',
    )
    leaderboard = db.relationship(
        'Leaderboard',
        backref='cup',
        uselist=False,
        cascade='all, delete-orphan',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'year': self.year,
            'month': self.month,
            'name': self.name,
            'current': self.current,
            'public': self.public,
            'created_at': isoformat_or_none(self.created_at),
        }


class Qualifier(db.Model):
    """One qualifying round of a cup."""
    id = db.Column(db.Integer, primary_key=True)
    cup_id = db.Column(db.Integer, db.ForeignKey('cup.id'), nullable=False)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    results = db.relationship(
        'QualifierResult',
        backref='qualifier',
        cascade='all, delete-orphan',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'cup_id': self.cup_id,
            'version': self.version,
        }


class QualifierResult(db.Model):
    """Raw result of one player on one server of a qualifier."""
    id = db.Column(db.Integer, primary_key=True)
    qualifier_id = db.Column(db.Integer, db.ForeignKey('qualifier.id'), nullable=False)
    player_id = db.Column(db.String(120), db.ForeignKey('player.id'), nullable=False)
    server = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.Index('ix_qualifier_result_qualifier_server', 'qualifier_id', 'server'),
    )

    player = db.relationship('Player', backref='qualifier_results')

    def to_dict(self):
        return {
            'id': self.id,
            'qualifier_id': self.qualifier_id,
            'player_id': self.player_id,
            'server': self.server,
            'position': self.position,
            'points': self.points,
        }


class Leaderboard(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    cup_id = db.Column(db.Integer, db.ForeignKey('cup.id'), nullable=False, unique=True)
    updated_at = db.Column(db.DateTime, nullable=True)

    entries = db.relationship(
        'LeaderboardEntry',
        backref='leaderboard',
        order_by='LeaderboardEntry.position',
        cascade='all, delete-orphan',
    )

    def to_dict(self, include_entries=True):
        data = {
            'id': self.id,
            'cup_id': self.cup_id,
            'updated_at': isoformat_or_none(self.updated_at),
        }
        if include_entries:
            data['entries'] = [entry.to_dict() for entry in self.entries]
        return data


class LeaderboardEntry(db.Model):
    """Computed standing of a player; rewritten on every recompute."""
    id = db.Column(db.Integer, primary_key=True)
    leaderboard_id = db.Column(db.Integer, db.ForeignKey('leaderboard.id'), nullable=False)
    player_id = db.Column(db.String(120), db.ForeignKey('player.id'), nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0)
    qualified = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('leaderboard_id', 'player_id', name='uq_leaderboard_entry_player'),
        db.Index('ix_leaderboard_entry_leaderboard_position', 'leaderboard_id', 'position'),
    )

    player = db.relationship('Player', backref='leaderboard_entries')

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'points': self.points,
            'qualified': self.qualified,
            'position': self.position,
            'player': self.player.to_dict() if self.player else None,
        }
