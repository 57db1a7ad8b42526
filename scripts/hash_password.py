#!/usr/bin/env python3
"""
Generate a bcrypt hash for the admin password.
Usage: python scripts/hash_password.py [password]
Prompts for the password when it is not given.
"""

import getpass
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.auth import hash_password


def main():
    if len(sys.argv) > 2:
        print("Usage: python scripts/hash_password.py [password]")
        sys.exit(1)

    password = sys.argv[1] if len(sys.argv) == 2 else getpass.getpass("Admin password: ")
    if not password:
        print("Password must not be empty")
        sys.exit(1)

    print("\nAdd this to your .env file:\n")
    print(f"ADMIN_PASSWORD_HASH={hash_password(password)}")
    print()


if __name__ == "__main__":
    main()
