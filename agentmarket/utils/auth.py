from werkzeug.security import generate_password_hash
from flask import session
from ..models import db
from ..models.user import User


def hash_password(password):
    """Generate password hash"""
    return generate_password_hash(password)


def get_current_user_id():
    """Identity of the signed-in user, as stored by the auth application."""
    return session.get('user_id')


def get_current_user():
    """Get current logged in user"""
    user_id = get_current_user_id()
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def has_role(user, role_name):
    """Authorization predicate used by the admin and seller endpoints."""
    if user is None or user.role is None:
        return False
    if user.role.name == role_name:
        return True
    return user.check_permission('all')
