"""User/session routes extracted from app.py for readability."""

MIN_PASSWORD_LENGTH = 8


def register_user():
    import app as a

    User = a.User
    app = a.app
    db = a.db
    jsonify = a.jsonify
    request = a.request
    session = a.session

    data = request.get_json(silent=True) or {}
    username = str(data.get('username') or '').strip()
    password = str(data.get('password') or '')
    email = str(data.get('email') or '').strip().lower() or None

    if not username:
        return jsonify({'error': 'Username is required'}), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify({'error': f'Password must be at least {MIN_PASSWORD_LENGTH} characters'}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400
    if email and User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 400

    user = User(username=username, email=email)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    app.logger.info(f"Registered user {user.id}")

    session['user_id'] = user.id
    session.permanent = True
    return jsonify({'success': True, 'user': user.to_dict()}), 201


def login_user():
    import app as a

    User = a.User
    jsonify = a.jsonify
    request = a.request
    session = a.session

    data = request.get_json(silent=True) or {}
    username = str(data.get('username') or '').strip()
    password = str(data.get('password') or '')
    if not username or not password:
        return jsonify({'error': 'Username and password are required'}), 400

    user = User.query.filter_by(username=username).first()
    if not user or not user.check_password(password):
        return jsonify({'error': 'Invalid credentials'}), 401

    session['user_id'] = user.id
    session.permanent = True
    return jsonify({'success': True, 'user': user.to_dict()})


def logout_user():
    import app as a

    jsonify = a.jsonify
    session = a.session

    session.pop('user_id', None)
    return jsonify({'success': True})


def current_user_info():
    import app as a

    get_current_user = a.get_current_user
    jsonify = a.jsonify

    user = get_current_user()
    if user:
        return jsonify({'user_id': user.id, 'username': user.username})
    return jsonify({'user_id': None, 'username': None})
