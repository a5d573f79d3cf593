# db/schema.py
from __future__ import annotations

import aiomysql

from db.tx import transaction

# InnoDB, so the multi-row bracket writes are transactional.
SCHEMA: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS tournament (
      tournament_id    CHAR(32)     NOT NULL,
      event_id         VARCHAR(64)  NULL,
      name             VARCHAR(128) NOT NULL,
      tournament_type  VARCHAR(16)  NOT NULL DEFAULT 'single_stage',
      play_format      VARCHAR(16)  NOT NULL DEFAULT 'singles',
      current_stage    VARCHAR(24)  NOT NULL DEFAULT 'setup',
      version          INT UNSIGNED NOT NULL DEFAULT 0,
      created_at       DATETIME(6)  NOT NULL DEFAULT CURRENT_TIMESTAMP(6),
      updated_at       DATETIME(6)  NOT NULL DEFAULT CURRENT_TIMESTAMP(6),
      PRIMARY KEY (tournament_id),
      KEY ix_tournament_event (event_id)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS tournament_participant (
      participant_id     CHAR(32)     NOT NULL,
      tournament_id      CHAR(32)     NOT NULL,
      player_id          VARCHAR(64)  NOT NULL,
      display_name       VARCHAR(128) NOT NULL,
      seed_number        INT UNSIGNED NOT NULL,
      group_id           VARCHAR(64)  NULL,
      partner_player_id  VARCHAR(64)  NULL,
      wins               INT UNSIGNED NOT NULL DEFAULT 0,
      losses             INT UNSIGNED NOT NULL DEFAULT 0,
      points_for         INT UNSIGNED NOT NULL DEFAULT 0,
      points_against     INT UNSIGNED NOT NULL DEFAULT 0,
      eliminated_round   INT UNSIGNED NULL,
      PRIMARY KEY (participant_id),
      KEY ix_participant_seed (tournament_id, seed_number),
      CONSTRAINT fk_participant_tournament FOREIGN KEY (tournament_id)
        REFERENCES tournament (tournament_id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS tournament_match (
      match_id            CHAR(32)     NOT NULL,
      tournament_id       CHAR(32)     NOT NULL,
      stage               VARCHAR(16)  NOT NULL,
      round_number        INT UNSIGNED NOT NULL,
      match_number        INT UNSIGNED NOT NULL,
      participant1_id     CHAR(32)     NULL,
      participant2_id     CHAR(32)     NULL,
      participant1_score  INT UNSIGNED NULL,
      participant2_score  INT UNSIGNED NULL,
      winner_id           CHAR(32)     NULL,
      status              VARCHAR(16)  NOT NULL DEFAULT 'awaiting',
      completed_at        DATETIME(6)  NULL,
      bracket_position    VARCHAR(16)  NOT NULL,
      PRIMARY KEY (match_id),
      UNIQUE KEY ux_match_slot (tournament_id, round_number, match_number),
      CONSTRAINT fk_match_tournament FOREIGN KEY (tournament_id)
        REFERENCES tournament (tournament_id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
)


async def ensure_schema(pool: aiomysql.Pool) -> None:
    async with transaction(pool, dict_rows=False) as (_conn, cur):
        for ddl in SCHEMA:
            await cur.execute(ddl)
