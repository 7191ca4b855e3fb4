from sqlalchemy import create_engine, inspect

from ielts_practice.db import create_schema


def test_create_schema_builds_all_tables():
	engine = create_engine("sqlite://")
	create_schema(engine)
	assert set(inspect(engine).get_table_names()) == {
		"user_profiles",
		"invite_redemptions",
		"writing_tasks",
		"essay_attempts",
		"speaking_attempts",
		"essay_drafts",
	}
	engine.dispose()
