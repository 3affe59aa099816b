"""
WhisprLog Goals - custom journaling goals API.
Tracks goal progress and streaks against the user's journal entries.
"""

import os
import logging
from datetime import datetime
from typing import Optional, Dict, Any, Tuple
from functools import wraps

from flask import Flask, request, jsonify
from flask_cors import CORS
from dotenv import load_dotenv

import goals as engine
from goal_store import GoalStore, JsonGoalStore, InMemoryGoalStore

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Constants
GOALS_FILE = os.getenv("WHISPRLOG_GOALS_FILE", "goals_data.json")
STORE_BACKEND = os.getenv("WHISPRLOG_STORE", "json").lower()
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
PORT = int(os.getenv("PORT", "5000"))
DEBUG = os.getenv("FLASK_DEBUG", "0").lower() in ("1", "true", "yes")


def build_store(backend: str) -> GoalStore:
    """Pick the goal store adapter for the configured backend."""
    if backend == "memory":
        logger.info("Using in-memory goal store")
        return InMemoryGoalStore()
    if backend != "json":
        logger.warning(f"Unknown WHISPRLOG_STORE '{backend}', falling back to json")
    logger.info(f"Using JSON goal store at {GOALS_FILE}")
    return JsonGoalStore(GOALS_FILE)


goal_store = build_store(STORE_BACKEND)

app = Flask(__name__)
CORS(app, origins=CORS_ORIGINS)


# =============================================================================
# Request Validation
# =============================================================================

def get_uid(source: Dict[str, Any]) -> Optional[str]:
    uid = source.get("uid")
    if uid is None:
        return None
    uid = str(uid).strip()
    return uid or None


def get_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def validate_goals_payload(goals: Any) -> Tuple[bool, str]:
    """Validate a bulk goals payload."""
    if not isinstance(goals, list):
        return False, "Goals must be an array."
    if not all(isinstance(g, dict) for g in goals):
        return False, "Each goal must be an object."
    return True, ""


def validate_entries_payload(entries: Any) -> Tuple[bool, str]:
    if not isinstance(entries, list):
        return False, "Entries must be an array."
    return True, ""


def missing_uid():
    return jsonify({"error": "User ID required."}), 400


def handle_errors(f):
    """Decorator for consistent error handling."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {f.__name__}: {e}")
            return jsonify({"error": "An unexpected error occurred"}), 500
    return wrapper


# =============================================================================
# Goal Routes
# =============================================================================

@app.route("/api/goals", methods=["GET"])
@handle_errors
def get_user_goals():
    """Get a user's goals, optionally only the active ones."""
    uid = get_uid(request.args)
    if not uid:
        return missing_uid()

    goals = goal_store.load(uid)
    if request.args.get("active", "").lower() == "true":
        goals = engine.active_goals(goals)

    return jsonify({"goals": goals})


@app.route("/api/goals", methods=["POST"])
@handle_errors
def save_user_goals():
    """Replace a user's goals in bulk."""
    body = get_body()
    uid = get_uid(body)
    if not uid:
        return missing_uid()

    goals = body.get("goals")
    valid, error_msg = validate_goals_payload(goals)
    if not valid:
        return jsonify({"error": error_msg}), 400

    if not goal_store.save(uid, goals):
        return jsonify({"error": "Failed to save goals."}), 500

    return jsonify({"success": True, "goals": goals})


@app.route("/api/goals/add", methods=["POST"])
@handle_errors
def add_user_goal():
    """Create a goal from user input."""
    body = get_body()
    uid = get_uid(body)
    if not uid:
        return missing_uid()

    try:
        goal = engine.create_goal(body.get("goalData"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    goals = goal_store.load(uid)
    goals.append(goal)
    if not goal_store.save(uid, goals):
        return jsonify({"error": "Failed to add goal."}), 500

    logger.info(f"Added goal {goal['id']} for user {uid}")
    return jsonify({"success": True, "goal": goal})


@app.route("/api/goals/templates", methods=["GET"])
def get_goal_templates():
    """List the built-in goal templates and the options goals accept."""
    return jsonify({
        "templates": engine.GOAL_TEMPLATES,
        "goalTypes": list(engine.GOAL_TYPES.values()),
        "frequencies": engine.FREQUENCY_OPTIONS
    })


@app.route("/api/goals/from-template", methods=["POST"])
@handle_errors
def add_goal_from_template():
    """Create a goal pre-filled from a template."""
    body = get_body()
    uid = get_uid(body)
    if not uid:
        return missing_uid()

    template_id = body.get("templateId")
    overrides = body.get("overrides")
    if overrides is not None and not isinstance(overrides, dict):
        return jsonify({"error": "Overrides must be an object."}), 400

    try:
        goal = engine.goal_from_template(template_id, overrides)
    except KeyError:
        return jsonify({"error": "Template not found."}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    goals = goal_store.load(uid)
    goals.append(goal)
    if not goal_store.save(uid, goals):
        return jsonify({"error": "Failed to add goal."}), 500

    return jsonify({"success": True, "goal": goal})


@app.route("/api/goals/<goal_id>/progress", methods=["PUT"])
@handle_errors
def update_goal_progress(goal_id: str):
    """Record a manual progress value for one goal."""
    body = get_body()
    uid = get_uid(body)
    if not uid:
        return missing_uid()

    if "progress" not in body:
        return jsonify({"error": "Progress required."}), 400

    on = None
    if body.get("date"):
        timestamp = engine.parse_timestamp(body["date"])
        if timestamp is None:
            return jsonify({"error": "Invalid date format"}), 400
        on = timestamp.date()

    if not goal_store.exists(uid):
        return jsonify({"error": "User goals not found."}), 404

    goals = goal_store.load(uid)
    index = engine.find_goal(goals, goal_id)
    if index is None:
        return jsonify({"error": "Goal not found."}), 404

    goals[index] = engine.update_goal_progress(goals[index], body["progress"], on)
    if not goal_store.save(uid, goals):
        return jsonify({"error": "Failed to update goal progress."}), 500

    return jsonify({"success": True, "goal": goals[index]})


@app.route("/api/goals/<goal_id>/toggle", methods=["POST"])
@handle_errors
def toggle_goal(goal_id: str):
    """Activate or deactivate a goal."""
    body = get_body()
    uid = get_uid(body)
    if not uid:
        return missing_uid()

    goals = goal_store.load(uid)
    index = engine.find_goal(goals, goal_id)
    if index is None:
        return jsonify({"error": "Goal not found."}), 404

    goals[index] = engine.toggle_goal_status(goals[index])
    if not goal_store.save(uid, goals):
        return jsonify({"error": "Failed to update goal."}), 500

    return jsonify({"success": True, "goal": goals[index]})


@app.route("/api/goals/<goal_id>", methods=["DELETE"])
@handle_errors
def delete_user_goal(goal_id: str):
    """Remove a goal permanently."""
    uid = get_uid(request.args)
    if not uid:
        return missing_uid()

    if not goal_store.exists(uid):
        return jsonify({"error": "User goals not found."}), 404

    goals = [g for g in goal_store.load(uid) if g.get("id") != goal_id]
    if not goal_store.save(uid, goals):
        return jsonify({"error": "Failed to delete goal."}), 500

    return jsonify({"success": True})


@app.route("/api/goals/sync", methods=["POST"])
@handle_errors
def sync_goals_with_entries():
    """Recompute every goal of a user against their journal entries."""
    body = get_body()
    uid = get_uid(body)
    if not uid:
        return missing_uid()

    entries = body.get("entries")
    valid, error_msg = validate_entries_payload(entries)
    if not valid:
        return jsonify({"error": error_msg}), 400

    if not goal_store.exists(uid):
        return jsonify({"success": True, "goals": []})

    goals = engine.sync_goals(goal_store.load(uid), entries, datetime.now())
    if not goal_store.save(uid, goals):
        return jsonify({"error": "Failed to sync goals."}), 500

    logger.info(f"Synced {len(goals)} goals for user {uid} against {len(entries)} entries")
    return jsonify({"success": True, "goals": goals})


@app.route("/api/goals/<goal_id>/progress", methods=["GET"])
@handle_errors
def get_goal_progress(goal_id: str):
    """Progress summary for a week, month or year."""
    uid = get_uid(request.args)
    if not uid:
        return missing_uid()

    timeframe = request.args.get("timeframe", "week")
    if timeframe not in engine.TIMEFRAME_DAYS:
        return jsonify({"error": "Timeframe must be week, month or year."}), 400

    goals = goal_store.load(uid)
    index = engine.find_goal(goals, goal_id)
    if index is None:
        return jsonify({"error": "Goal not found."}), 404

    goal = goals[index]
    return jsonify({
        "goal_id": goal_id,
        "timeframe": timeframe,
        "progress": engine.get_goal_progress(goal, timeframe),
        "achievements": engine.get_goal_achievements(goal)
    })


@app.route("/api/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    logger.info("Starting WhisprLog goals server...")
    app.run(debug=DEBUG, port=PORT)
