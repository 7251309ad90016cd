"""Boards blueprint — /api/boards, /api/dashboard

Route Map:
  GET    /api/boards              — List the current user's boards
  POST   /api/boards              — Create board
  GET    /api/boards/<id>         — Board tree (columns + cards), ETag'd
  PATCH  /api/boards/<id>         — Rename / describe board
  DELETE /api/boards/<id>         — Delete board (cascades)
  GET    /api/dashboard           — Totals + latest board

The board tree carries ETag "<board_id>-<revision>". Any change to the
board's subtree bumps the revision, so a client holding a stale copy gets
a fresh 200 and an up-to-date one gets 304.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from taskboard.extensions import db
from taskboard.services import board_service

boards_bp = Blueprint("boards", __name__, url_prefix="/api")


@boards_bp.route("/boards")
@login_required
def list_boards():
    boards = board_service.list_boards(current_user.id)
    return jsonify([board_service.board_dict(b) for b in boards])


@boards_bp.route("/boards", methods=["POST"])
@login_required
def create_board():
    data = request.get_json(silent=True) or {}
    board = board_service.create_board(
        current_user.id,
        name=data.get("name"),
        description=data.get("description"),
    )
    db.session.commit()
    return jsonify(board_service.board_dict(board)), 201


@boards_bp.route("/boards/<board_id>")
@login_required
def get_board(board_id):
    tree = board_service.get_board_tree(board_id, current_user.id)
    response = jsonify(tree)
    response.set_etag(f"{tree['id']}-{tree['revision']}")
    return response.make_conditional(request)


@boards_bp.route("/boards/<board_id>", methods=["PATCH"])
@login_required
def update_board(board_id):
    data = request.get_json(silent=True) or {}
    board = board_service.update_board(
        board_id,
        current_user.id,
        name=data.get("name"),
        description=data.get("description"),
    )
    db.session.commit()
    return jsonify(board_service.board_dict(board))


@boards_bp.route("/boards/<board_id>", methods=["DELETE"])
@login_required
def delete_board(board_id):
    board_service.delete_board(board_id, current_user.id)
    db.session.commit()
    return jsonify({"success": True})


@boards_bp.route("/dashboard")
@login_required
def dashboard():
    return jsonify(board_service.dashboard_summary(current_user.id))
