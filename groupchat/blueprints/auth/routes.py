from flask import jsonify, request, current_app
from flask_login import login_required, current_user

from groupchat import limiter, login_manager
from groupchat.blueprints.auth import auth_bp
from groupchat.blueprints.auth.forms import LoginForm, RegistrationForm
from groupchat.errors import AuthError
from groupchat.models.api_token import ApiToken
from groupchat.services import get_services, persistence


@login_manager.unauthorized_handler
def unauthorized():
    """Token API: answer 401 instead of redirecting to a login page"""
    return jsonify({'error': 'Authentication required', 'code': 'auth_error'}), 401


@auth_bp.route('/register', methods=['POST'])
@limiter.limit("10 per minute")
def register():
    """Create an account and return a bearer token"""
    form = RegistrationForm().validate_or_raise()

    user = persistence.create_user(
        form.username.data,
        form.email.data,
        form.password.data,
        display_name=form.display_name.data or None
    )
    api_token = persistence.issue_token(user)

    current_app.logger.info(f"New user registered: {user.username} (id {user.id})")
    return jsonify({'token': api_token.token, 'user': user.to_dict(include_private=True)}), 201


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("5 per minute")
def login():
    """Exchange email and password for a bearer token"""
    form = LoginForm().validate_or_raise()

    try:
        user = persistence.verify_credentials(form.email.data, form.password.data)
    except AuthError:
        current_app.logger.warning(f"Failed login for {form.email.data} from {request.remote_addr}")
        raise

    api_token = persistence.issue_token(user)
    return jsonify({'token': api_token.token, 'user': user.to_dict(include_private=True)})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Revoke the token used for this request and end the sockets it opened"""
    token = ApiToken.from_authorization_header(request.headers.get('Authorization'))
    persistence.revoke_token(token)
    get_services().realtime.drop_user(current_user.id, token=token)
    return jsonify({'success': True})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(current_user.to_dict(include_private=True))
