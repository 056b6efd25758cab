from datetime import datetime

from . import db


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False, default='')
    last_name = db.Column(db.String(100), nullable=False, default='')
    gender = db.Column(db.String(20))
    birthdate = db.Column(db.String(10))  # MM/DD/YYYY
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    tags = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            'id': self.id,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'fullName': self.full_name,
            'gender': self.gender,
            'birthdate': self.birthdate,
            'isAdmin': bool(self.is_admin),
            'tags': list(self.tags or []),
        }

    def __repr__(self):
        return f"<User {self.id} {self.full_name}>"


class Result(db.Model):
    __tablename__ = 'results'

    id = db.Column(db.Integer, primary_key=True)
    user_name = db.Column(db.String(200), nullable=False, index=True)
    activity = db.Column(db.String(200), nullable=False, index=True)
    value = db.Column(db.Float, nullable=False)
    date = db.Column(db.String(40), nullable=False)  # ISO 8601

    def to_dict(self):
        return {
            'id': self.id,
            'userName': self.user_name,
            'activity': self.activity,
            'value': self.value,
            'date': self.date,
        }

    def __repr__(self):
        return f"<Result {self.id} {self.user_name} {self.activity}={self.value}>"


class ConfigDocument(db.Model):
    """A single JSON document keyed by a fixed identifier."""

    __tablename__ = 'config_documents'

    doc_id = db.Column(db.String(100), primary_key=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ConfigDocument {self.doc_id}>"
