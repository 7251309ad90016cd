"""Kanban blueprint — /api/boards/<board_id>/*

Columns and cards of one board, including drag-and-drop persistence.
The board must belong to the current user; columns and cards must belong
to the board. Anything else is a 404.

Route Map:
  POST   /columns                          — Create column (appended, or {position})
  PATCH  /columns/<id>                     — Rename column
  DELETE /columns/<id>                     — Delete column + cards
  PUT    /columns/reorder                  — Reorder columns {column_ids}
  POST   /columns/<id>/cards               — Create card (appended, or {position})
  PUT    /columns/<id>/cards/reorder       — Reorder cards {card_ids}
  PATCH  /cards/<id>                       — Edit card title/content
  DELETE /cards/<id>                       — Delete card
  POST   /cards/<id>/move                  — Move card to another column
                                             {source_column_id, target_column_id,
                                              ordered_card_ids}
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from taskboard.errors import ValidationError
from taskboard.extensions import db
from taskboard.services import board_service, reorder_service

kanban_bp = Blueprint("kanban", __name__, url_prefix="/api/boards/<board_id>")


def _owned_board(board_id):
    return board_service.get_board(board_id, current_user.id)


def _id_list(data, key):
    ids = data.get(key)
    if ids is None:
        raise ValidationError(f"'{key}' is required.")
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise ValidationError(f"'{key}' must be a list of ids.")
    return ids


# ─── Column API ──────────────────────────────────────────────────

@kanban_bp.route("/columns", methods=["POST"])
@login_required
def create_column(board_id):
    board = _owned_board(board_id)
    data = request.get_json(silent=True) or {}
    column = board_service.create_column(
        board.id, data.get("name"), position=data.get("position")
    )
    db.session.commit()
    return jsonify(board_service.column_dict(column)), 201


@kanban_bp.route("/columns/<column_id>", methods=["PATCH"])
@login_required
def update_column(board_id, column_id):
    board = _owned_board(board_id)
    data = request.get_json(silent=True) or {}
    column = board_service.update_column(board.id, column_id, data.get("name"))
    db.session.commit()
    return jsonify(board_service.column_dict(column))


@kanban_bp.route("/columns/<column_id>", methods=["DELETE"])
@login_required
def delete_column(board_id, column_id):
    board = _owned_board(board_id)
    board_service.delete_column(board.id, column_id)
    db.session.commit()
    return jsonify({"success": True})


@kanban_bp.route("/columns/reorder", methods=["PUT"])
@login_required
def reorder_columns(board_id):
    board = _owned_board(board_id)
    data = request.get_json(silent=True) or {}
    records = reorder_service.reorder_columns(board.id, _id_list(data, "column_ids"))
    return jsonify({
        "success": True,
        "columns": [board_service.column_dict(r) for r in records],
    })


# ─── Card API ────────────────────────────────────────────────────

@kanban_bp.route("/columns/<column_id>/cards", methods=["POST"])
@login_required
def create_card(board_id, column_id):
    board = _owned_board(board_id)
    data = request.get_json(silent=True) or {}
    card = board_service.create_card(
        board.id,
        column_id,
        title=data.get("title"),
        content=data.get("content"),
        position=data.get("position"),
    )
    db.session.commit()
    return jsonify(board_service.card_dict(card)), 201


@kanban_bp.route("/columns/<column_id>/cards/reorder", methods=["PUT"])
@login_required
def reorder_cards(board_id, column_id):
    board = _owned_board(board_id)
    column = board_service.get_column(board.id, column_id)
    data = request.get_json(silent=True) or {}
    records = reorder_service.reorder_cards(column.id, _id_list(data, "card_ids"))
    return jsonify({
        "success": True,
        "cards": [board_service.card_dict(r) for r in records],
    })


@kanban_bp.route("/cards/<card_id>", methods=["PATCH"])
@login_required
def update_card(board_id, card_id):
    board = _owned_board(board_id)
    data = request.get_json(silent=True) or {}
    card = board_service.update_card(
        board.id,
        card_id,
        title=data.get("title"),
        content=data.get("content"),
    )
    db.session.commit()
    return jsonify(board_service.card_dict(card))


@kanban_bp.route("/cards/<card_id>", methods=["DELETE"])
@login_required
def delete_card(board_id, card_id):
    board = _owned_board(board_id)
    board_service.delete_card(board.id, card_id)
    db.session.commit()
    return jsonify({"success": True})


@kanban_bp.route("/cards/<card_id>/move", methods=["POST"])
@login_required
def move_card(board_id, card_id):
    board = _owned_board(board_id)
    data = request.get_json(silent=True) or {}
    source_id = data.get("source_column_id")
    target_id = data.get("target_column_id")
    if not source_id or not target_id:
        raise ValidationError("'source_column_id' and 'target_column_id' are required.")

    board_service.get_card(board.id, card_id)
    board_service.get_column(board.id, source_id)
    board_service.get_column(board.id, target_id)

    result = reorder_service.move_card(
        card_id,
        source_id,
        target_id,
        _id_list(data, "ordered_card_ids"),
    )
    return jsonify({
        "success": True,
        "card": board_service.card_dict(result.card),
        "cards": [board_service.card_dict(r) for r in result.target_cards],
    })
