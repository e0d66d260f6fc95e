import eventlet

# Group and user locks are threading locks; they must be green under eventlet
eventlet.monkey_patch()

import os  # noqa: E402
from dotenv import load_dotenv  # noqa: E402

# Load environment variables before the config classes read them
load_dotenv()

from groupchat import create_app, db, socketio  # noqa: E402

# Create application
app = create_app(os.getenv('FLASK_ENV', 'development'))


@app.shell_context_processor
def make_shell_context():
    """Make database and models available in Flask shell"""
    from groupchat.models.user import User
    from groupchat.models.group import Group, GroupMembership
    from groupchat.models.message import Message
    from groupchat.models.reaction import Reaction

    return {
        'db': db,
        'User': User,
        'Group': Group,
        'GroupMembership': GroupMembership,
        'Message': Message,
        'Reaction': Reaction
    }


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    # Only enable debug mode in development
    debug_mode = os.getenv('FLASK_ENV') == 'development'
    # Use socketio.run() instead of app.run() for WebSocket support
    # Note: use_reloader=False to avoid port conflicts with eventlet
    socketio.run(app, host='0.0.0.0', port=port, debug=debug_mode, use_reloader=False)
