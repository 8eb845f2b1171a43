"""SQLite database schema definitions."""

SCHEMA_SQL = """
-- Single biometric profile, created lazily
CREATE TABLE IF NOT EXISTS user_profile (
    profile_id INTEGER PRIMARY KEY AUTOINCREMENT,
    sex TEXT CHECK(sex IN ('male', 'female') OR sex IS NULL),
    date_of_birth DATE,
    height_cm REAL,
    activity_level TEXT CHECK(activity_level IN ('sedentary', 'lightly_active', 'moderately_active', 'very_active', 'extremely_active') OR activity_level IS NULL),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Goals: initial_* is the creation baseline, current_* is what the app reads
CREATE TABLE IF NOT EXISTS goals (
    goal_id INTEGER PRIMARY KEY AUTOINCREMENT,
    goal_type TEXT NOT NULL CHECK(goal_type IN ('lose', 'maintain', 'gain')),
    target_weight_kg REAL,
    target_rate_percent REAL NOT NULL DEFAULT 0,
    planning_mode TEXT NOT NULL DEFAULT 'rate' CHECK(planning_mode IN ('rate', 'timeline')),
    target_date DATE,
    start_date DATE NOT NULL,
    start_weight_kg REAL NOT NULL,
    initial_tdee INTEGER NOT NULL,
    initial_target_calories INTEGER NOT NULL,
    initial_protein_g INTEGER NOT NULL,
    initial_carbs_g INTEGER NOT NULL,
    initial_fat_g INTEGER NOT NULL,
    current_tdee INTEGER NOT NULL,
    current_target_calories INTEGER NOT NULL,
    current_protein_g INTEGER NOT NULL,
    current_carbs_g INTEGER NOT NULL,
    current_fat_g INTEGER NOT NULL,
    eating_style TEXT NOT NULL DEFAULT 'flexible',
    protein_priority TEXT NOT NULL DEFAULT 'active',
    is_active BOOLEAN NOT NULL DEFAULT 1,
    completed_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- At most one active goal
CREATE UNIQUE INDEX IF NOT EXISTS idx_goals_single_active ON goals(is_active) WHERE is_active = 1;

-- Weight log with stored EWMA trend, one row per calendar date
CREATE TABLE IF NOT EXISTS weight_entries (
    entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
    date DATE NOT NULL UNIQUE,
    weight_kg REAL NOT NULL,
    trend_kg REAL,
    notes TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_weight_entries_date ON weight_entries(date);

-- Append-only weekly reflections; target snapshots copied by value
CREATE TABLE IF NOT EXISTS reflections (
    reflection_id INTEGER PRIMARY KEY AUTOINCREMENT,
    reflected_at TIMESTAMP NOT NULL,
    weight_kg REAL NOT NULL,
    weight_trend_kg REAL,
    sentiment TEXT CHECK(sentiment IN ('positive', 'neutral', 'negative') OR sentiment IS NULL),
    previous_calories INTEGER NOT NULL,
    previous_protein_g INTEGER NOT NULL,
    previous_carbs_g INTEGER NOT NULL,
    previous_fat_g INTEGER NOT NULL,
    new_calories INTEGER NOT NULL,
    new_protein_g INTEGER NOT NULL,
    new_carbs_g INTEGER NOT NULL,
    new_fat_g INTEGER NOT NULL,
    weight_change_kg REAL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_reflections_reflected_at ON reflections(reflected_at);

-- Key/value user settings (daily goals, banner counters)
CREATE TABLE IF NOT EXISTS user_settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""


def get_schema_sql() -> str:
    """Return the complete schema SQL."""
    return SCHEMA_SQL
