"""
Input validation and sanitization utilities
"""
import re


# Maximum message length
MAX_MESSAGE_LENGTH = 10000
MAX_GROUP_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_REACTION_LENGTH = 32
MAX_SEARCH_LENGTH = 200


def validate_message_content(content):
    """
    Validate message content
    Returns: (is_valid, error_message)
    """
    if not content:
        return False, "Message content is required"

    content_str = str(content).strip()

    if len(content_str) == 0:
        return False, "Message cannot be empty"

    if len(content_str) > MAX_MESSAGE_LENGTH:
        return False, f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"

    return True, None


def validate_group_name(name):
    """
    Validate a group name
    Returns: (is_valid, error_message)
    """
    name_str = str(name or '').strip()

    if not name_str:
        return False, "Group name is required"

    if len(name_str) > MAX_GROUP_NAME_LENGTH:
        return False, f"Group name too long (max {MAX_GROUP_NAME_LENGTH} characters)"

    return True, None


def validate_reaction_type(reaction_type):
    """
    Validate a reaction (an emoji or a short :name: code)
    Returns: (is_valid, error_message)
    """
    if reaction_type is None or not str(reaction_type).strip():
        return False, "reactionType is required"

    if len(str(reaction_type).strip()) > MAX_REACTION_LENGTH:
        return False, f"reactionType too long (max {MAX_REACTION_LENGTH} characters)"

    return True, None


def validate_password_strength(password):
    """
    Validate password meets security requirements
    Returns: (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    password_str = str(password)

    if len(password_str) < 8:
        return False, "Password must be at least 8 characters long"

    if len(password_str) > 128:
        return False, "Password too long (max 128 characters)"

    # Check for complexity requirements
    has_uppercase = re.search(r'[A-Z]', password_str)
    has_lowercase = re.search(r'[a-z]', password_str)
    has_digit = re.search(r'\d', password_str)
    has_special = re.search(r'[!@#$%^&*()_+\-=\[\]{};:\'",.<>/?\\|`~]', password_str)

    missing_requirements = []
    if not has_uppercase:
        missing_requirements.append("one uppercase letter")
    if not has_lowercase:
        missing_requirements.append("one lowercase letter")
    if not has_digit:
        missing_requirements.append("one number")
    if not has_special:
        missing_requirements.append("one special character")

    if missing_requirements:
        return False, f"Password must contain: {', '.join(missing_requirements)}"

    return True, None


def sanitize_sql_like_pattern(pattern):
    """
    Sanitize a SQL LIKE pattern to prevent SQL injection
    """
    if not pattern:
        return ""

    # Escape special SQL LIKE characters
    sanitized = pattern.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return sanitized


def parse_int(value, field_name, default=None, minimum=None, maximum=None):
    """
    Parse an integer query/body parameter
    Returns: (is_valid, value_or_error_message)
    """
    if value is None or value == '':
        return True, default

    try:
        number = int(value)
    except (TypeError, ValueError):
        return False, f"{field_name} must be an integer"

    if minimum is not None and number < minimum:
        return False, f"{field_name} must be at least {minimum}"
    if maximum is not None and number > maximum:
        number = maximum

    return True, number
