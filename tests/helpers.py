# tests/helpers.py

import os
import tempfile

from aimtrack.database import Database

KOVAAKS_FILENAME = "Tile Frenzy - Challenge - 2024.01.05-10.30.12 Stats.csv"

KOVAAKS_EXPORT = """Kill #,Timestamp,Bot,Weapon,TTK,Shots,Hits,Accuracy,Damage Done,Damage Possible,Efficiency,Cheated,OverShots
1,10:30:01.512,TileTarget,Pistol,0.512s,2,1,0.5,100.0,100.0,1.0,false,0
2,10:30:02.001,TileTarget,Pistol,0.489s,1,1,1.0,100.0,100.0,1.0,false,1
3,10:30:02.430,TileTarget,Pistol,0.429s,1,1,1.0,100.0,100.0,1.0,false,1

Weapon,Shots,Hits,Damage Done,Damage Possible
Pistol,50,45,4500.0,5000.0

Kills:,3
Deaths:,0
Fight Time:,60.012
Avg TTK:,0.482
Damage Done:,4500.0
Damage Taken:,0.0
Midairs:,0
Hit Count:,45
Miss Count:,5
Total Overshots:,2
Score:,845.5
Scenario:,Tile Frenzy
Hash:,5e0a1c9bd3a84c1e
Game Version:,3.4.2.2024-01-01-00-00-00
Challenge Start:,10:30:00.000
Input Lag:,0
Max FPS (config):,300.0
Sens Scale:,cm/360
Horiz Sens:,34.6
Vert Sens:,34.6
FOV:,103.0
Avg FPS:,240.5
"""

COLON_SUMMARY = """Scenario: Pasu Angelic
Score: 1234.5
Accuracy: 87.5%
Duration: 1:30
Date: 2024-03-02T18:45:00
"""

COLUMN_TABLE = """Scenario,Score,Accuracy,Shots,Hits,Duration
Close Long Strafes,2500,0.875,200,175,60
"""


def kill_table(rows: int = 10, score: str = "500", scenario: str = "Gridshot") -> str:
    """Kill table with one shot/one hit per row, one second apart, 0.3s TTK."""
    lines = ["Kill #,Timestamp,TTK,Shots,Hits"]
    for i in range(1, rows + 1):
        lines.append(f"{i},12:00:{i:02d}.000,0.3s,1,1")
    lines.append("")
    lines.append(f"Score:,{score}")
    lines.append(f"Scenario:,{scenario}")
    return "\n".join(lines) + "\n"


def write_csv(directory: str, name: str, content: str) -> str:
    """Write an export into `directory` (creating sub folders) and return its path."""
    path = os.path.join(directory, name)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8', newline='') as handle:
        handle.write(content)
    return path


def set_mtime(path: str, timestamp: float) -> None:
    os.utime(path, (timestamp, timestamp))


def create_test_db() -> Database:
    """Create a fresh database in a temporary file; caller closes and removes it."""
    fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    os.remove(db_path)
    return Database(db_path)


def remove_test_db(db: Database) -> None:
    path = db.db_path
    db.close()
    for suffix in ('', '-wal', '-shm'):
        if os.path.exists(path + suffix):
            os.remove(path + suffix)
