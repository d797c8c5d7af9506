"""
FastAPI Backend for the Adaptive Posture Monitor
Main application with REST API endpoints
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
from datetime import datetime
from typing import List, Optional, Tuple
from contextlib import asynccontextmanager
import time

from config import API_HOST, API_PORT, SERIAL_ENABLED
from database import (
    init_db, get_db, SessionLocal, PostureScoreDB, ReminderEventDB,
    save_score, save_reminder_event, mark_reminder_response
)
from models import (
    PostureScore, BehaviorProfile, SessionStats, AdaptiveThresholds,
    TiltReading, VisionReading, StabilityReading, ReminderConfig, ReminderEvent,
    ReminderResponse, ReminderStats, ReminderActionRequest
)
from monitor import PostureMonitor
from serial_reader import SerialReader, ChannelReading
from session_context import LogEntry
from utils import to_local


# Global instances
monitor = PostureMonitor()
serial_reader: Optional[SerialReader] = None


def archive_score(score: PostureScore):
    """Store each accepted score"""
    db = SessionLocal()
    try:
        save_score(db, monitor.context.session_id, score)
    except Exception as e:
        monitor.context.error("Database", "Error storing score", e)
        db.rollback()
    finally:
        db.close()


def archive_reminder(event: ReminderEvent):
    """Store each reminder as it is issued"""
    db = SessionLocal()
    try:
        save_reminder_event(db, monitor.context.session_id, event)
    except Exception as e:
        monitor.context.error("Database", "Error storing reminder", e)
        db.rollback()
    finally:
        db.close()


def archive_response(event: ReminderEvent, response: ReminderResponse):
    db = SessionLocal()
    try:
        mark_reminder_response(db, monitor.context.session_id, event, response)
    except Exception as e:
        monitor.context.error("Database", "Error storing reminder response", e)
        db.rollback()
    finally:
        db.close()


def request_haptic(pattern: Tuple[int, ...]):
    """Forward the vibration pattern to the device when one is connected"""
    if serial_reader and serial_reader.is_running:
        serial_reader.send_haptic(pattern)


def route_reading(reading: ChannelReading):
    """
    Callback for the serial reader.
    Feeds each channel reading into the monitoring pipeline.
    """
    if isinstance(reading, TiltReading):
        monitor.ingest_tilt(reading)
    elif isinstance(reading, VisionReading):
        monitor.ingest_vision(reading)
    elif isinstance(reading, StabilityReading):
        monitor.ingest_stability(reading)


monitor.on_score = archive_score
monitor.reminders.on_reminder = archive_reminder
monitor.reminders.on_resolved = archive_response
monitor.reminders.on_haptic = request_haptic


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    global serial_reader

    # Startup
    print("Starting Adaptive Posture Monitor Backend...")
    init_db()
    monitor.start()

    if SERIAL_ENABLED:
        serial_reader = SerialReader(clock=monitor.context.clock)
        serial_reader.set_callback(route_reading)

        if serial_reader.connect():
            serial_reader.start_reading()
            monitor.context.log_sensor_status("Serial", True, serial_reader.port)
        else:
            monitor.context.warning("Serial", "Could not connect to serial port. Running without live data.")

    yield

    # Shutdown
    print("Shutting down...")
    monitor.stop()
    if serial_reader:
        serial_reader.stop_reading()


# Create FastAPI app
app = FastAPI(
    title="Adaptive Posture Monitor API",
    description="Posture scoring and adaptive reminder scheduling from streaming sensor data",
    version="1.0.0",
    lifespan=lifespan
)

# Enable CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== API ENDPOINTS ====================

@app.get("/")
def root():
    """Root endpoint - API status"""
    return {
        "status": "running",
        "name": "Adaptive Posture Monitor API",
        "version": "1.0.0",
        "session_id": monitor.context.session_id,
        "monitoring": monitor.is_monitoring,
        "serial_connected": serial_reader.is_running if serial_reader else False
    }


@app.get("/api/score", response_model=PostureScore)
def get_current_score():
    """Get the latest accepted posture score."""
    score = monitor.scorer.current_score
    if score is None:
        raise HTTPException(status_code=404, detail="No posture score yet")
    return score


@app.get("/api/behavior", response_model=BehaviorProfile)
def get_behavior():
    """Get the behavior profile of the current session."""
    return monitor.scorer.behavior


@app.get("/api/thresholds", response_model=AdaptiveThresholds)
def get_thresholds():
    """Get the thresholds the next reading will be scored against."""
    return monitor.scorer.personalized_thresholds()


@app.get("/api/stats", response_model=SessionStats)
def get_session_stats(fresh: bool = False):
    """
    Get session statistics.
    Returns the periodic snapshot, or a freshly computed one with ?fresh=true.
    """
    if fresh:
        return monitor.refresh_stats()
    return monitor.session_stats


@app.get("/api/history", response_model=List[PostureScore])
def get_score_history(limit: int = Query(50, ge=1)):
    """Get the most recent session scores in chronological order."""
    return list(monitor.scorer.session_scores)[-limit:]


# ==================== SENSOR INPUT ====================

@app.post("/api/sensors/tilt", response_model=Optional[PostureScore])
def post_tilt(reading: TiltReading):
    """Feed a tilt reading; returns the resulting score if any"""
    return monitor.ingest_tilt(reading)


@app.post("/api/sensors/vision", response_model=Optional[PostureScore])
def post_vision(reading: VisionReading):
    """Feed a face tracking reading; returns the resulting score if any"""
    return monitor.ingest_vision(reading)


@app.post("/api/sensors/stability", response_model=Optional[PostureScore])
def post_stability(reading: StabilityReading):
    """Feed a device stability reading; returns the resulting score if any"""
    return monitor.ingest_stability(reading)


@app.post("/api/sensors/calibrate")
def calibrate_sensors():
    """Forget held sensor values"""
    monitor.calibrate()
    return {"message": "Sensors calibrated"}


# ==================== REMINDERS ====================

@app.get("/api/reminders/active", response_model=Optional[ReminderEvent])
def get_active_reminder():
    """Get the active reminder, or null"""
    return monitor.reminders.active_reminder


@app.post("/api/reminders/respond")
def respond_to_reminder(request: ReminderActionRequest):
    """Resolve the active reminder with a user action"""
    if not monitor.respond(request.action):
        raise HTTPException(status_code=404, detail="No active reminder")
    return {
        "message": "Response recorded",
        "stats": monitor.reminders.get_reminder_stats()
    }


@app.post("/api/reminders/check", response_model=ReminderEvent)
def request_posture_check():
    """User-requested posture check for the current score"""
    event = monitor.request_check()
    if event is None:
        raise HTTPException(status_code=409, detail="No score yet or a reminder is already active")
    return event


@app.get("/api/reminders/history", response_model=List[ReminderEvent])
def get_reminder_history(limit: int = Query(20, ge=1)):
    """Get recent reminders in chronological order."""
    return list(monitor.reminders.reminder_history)[-limit:]


@app.get("/api/reminders/stats", response_model=ReminderStats)
def get_reminder_stats():
    return monitor.reminders.get_reminder_stats()


@app.get("/api/reminders/config", response_model=ReminderConfig)
def get_reminder_config():
    return monitor.reminders.config


@app.put("/api/reminders/config", response_model=ReminderConfig)
def update_reminder_config(config: ReminderConfig):
    """Replace the reminder configuration"""
    monitor.update_config(config)
    return monitor.reminders.config


@app.post("/api/app-state")
def set_app_state(foreground: bool):
    """Tell the scheduler whether the app is in the foreground"""
    monitor.reminders.app_in_foreground = foreground
    return {"foreground": foreground}


@app.get("/api/reminders/archive", response_model=List[dict])
def get_archived_reminders(
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db)
):
    """
    Get archived reminders across sessions.
    """
    rows = db.query(ReminderEventDB).order_by(
        ReminderEventDB.timestamp.desc()
    ).limit(limit).all()

    return [
        {
            "id": r.id,
            "session_id": r.session_id,
            "timestamp": to_local(r.timestamp),
            "level": r.level,
            "type": r.reminder_type,
            "score": r.score,
            "acknowledged": r.acknowledged,
            "user_action": r.user_action
        }
        for r in rows
    ]


@app.get("/api/daily-summary")
def get_daily_summary(
    date: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Get daily summary statistics.
    If no date provided, returns today's summary.
    """
    if date:
        target_date = datetime.strptime(date, "%Y-%m-%d").date()
    else:
        target_date = monitor.context.now().date()

    start_of_day = datetime.combine(target_date, datetime.min.time())
    end_of_day = datetime.combine(target_date, datetime.max.time())

    score_count, average_score = db.query(
        func.count(PostureScoreDB.id), func.avg(PostureScoreDB.overall)
    ).filter(
        PostureScoreDB.timestamp >= start_of_day,
        PostureScoreDB.timestamp <= end_of_day
    ).one()

    reminders = db.query(ReminderEventDB).filter(
        ReminderEventDB.timestamp >= start_of_day,
        ReminderEventDB.timestamp <= end_of_day
    ).all()

    acknowledged = sum(1 for r in reminders if r.acknowledged)
    total = len(reminders)

    return {
        "date": str(target_date),
        "total_scores": score_count,
        "average_score": round(average_score, 2) if average_score is not None else 0,
        "reminder_count": total,
        "acknowledged_count": acknowledged,
        "response_rate": round(acknowledged / total, 2) if total > 0 else 0
    }


# ==================== SESSION ====================

@app.post("/api/monitoring/start")
def start_monitoring():
    monitor.start()
    return {"monitoring": monitor.is_monitoring}


@app.post("/api/monitoring/stop")
def stop_monitoring():
    monitor.stop()
    return {"monitoring": monitor.is_monitoring}


@app.post("/api/reset-session")
def reset_session():
    """Reset the current session statistics"""
    monitor.reset_session()
    return {"message": "Session data reset successfully"}


@app.get("/api/report", response_class=PlainTextResponse)
def get_session_report():
    """Plain-text session report"""
    return monitor.generate_report()


@app.get("/api/logs", response_model=List[LogEntry])
def get_logs(level: Optional[str] = None, tag: Optional[str] = None,
             limit: int = Query(100, ge=1)):
    return monitor.context.get_logs(level=level, tag=tag)[-limit:]


@app.get("/api/serial/status")
def get_serial_status():
    """Get serial connection status"""
    if serial_reader:
        return {
            "connected": serial_reader.is_running,
            "port": serial_reader.port,
            "baud_rate": serial_reader.baud_rate,
            "recent_readings_count": len(serial_reader.get_recent_readings(serial_reader.max_recent_readings))
        }
    return {"connected": False, "error": "Serial reader not initialized"}


@app.post("/api/serial/reconnect")
def reconnect_serial():
    """Attempt to reconnect to serial port"""
    if serial_reader:
        serial_reader.stop_reading()
        time.sleep(1)

        if serial_reader.connect():
            serial_reader.start_reading()
            return {"success": True, "message": "Reconnected successfully"}
        else:
            return {"success": False, "message": "Failed to reconnect"}

    return {"success": False, "message": "Serial reader not initialized"}


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    print("=" * 50)
    print("Adaptive Posture Monitor - Backend Server")
    print("=" * 50)

    uvicorn.run(
        "main:app",
        host=API_HOST,
        port=API_PORT,
        reload=True
    )
