#!/usr/bin/env python3
"""
Run the smoke tests in order.

Usage:
    python tests/run_all.py          # every suite
    python tests/run_all.py D F      # only suites D and F
"""

import subprocess
import sys
import time
from pathlib import Path

TESTS_DIR = Path(__file__).parent

SUITES = [
    ("A", "Sign-Up Seeding", "test_a_signup.py"),
    ("B", "Questions + AI Settings", "test_b_questions_settings.py"),
    ("C", "Subscription Status", "test_c_subscription_check.py"),
    ("D", "Stripe Subscription Sync", "test_d_stripe_sync.py"),
    ("E", "Email Check + Rate Limiting", "test_e_email_check.py"),
    ("F", "Real-Time Call Updates", "test_f_call_updates.py"),
    ("G", "Voice-AI Calls + Assistants", "test_g_voice_ai.py"),
    ("H", "Address Search", "test_h_geocoding.py"),
    ("I", "FAQ Feedback", "test_i_faq_feedback.py"),
    ("J", "Telephony + Call Cache", "test_j_telephony_cache.py"),
]


def run_suite(label: str, script: Path) -> tuple[bool, float]:
    print(f"\n{'=' * 70}")
    print(f"RUNNING: {label}")
    print(f"{'=' * 70}")

    started = time.monotonic()
    result = subprocess.run([sys.executable, "-m", "pytest", str(script), "-q"], cwd=TESTS_DIR.parent)
    return result.returncode == 0, time.monotonic() - started


def main(argv: list[str]) -> int:
    wanted = {letter.upper() for letter in argv}
    unknown = wanted - {letter for letter, _, _ in SUITES}
    if unknown:
        print(f"✗ Unknown suite(s): {', '.join(sorted(unknown))}")
        return 2

    print("\n" + "=" * 70)
    print("SPOQEN API - SMOKE TEST SUITE")
    print("=" * 70)

    results = []
    for letter, name, filename in SUITES:
        if wanted and letter not in wanted:
            continue
        label = f"{letter}) {name}"
        script = TESTS_DIR / filename
        if not script.exists():
            print(f"⚠ Skipping {label}: {filename} not found")
            results.append((label, None, 0.0))
            continue
        passed, elapsed = run_suite(label, script)
        results.append((label, passed, elapsed))

    print("\n" + "=" * 70)
    print("FINAL SUMMARY")
    print("=" * 70)

    symbols = {True: "✓ PASS", False: "✗ FAIL", None: "⚠ SKIP"}
    for label, passed, elapsed in results:
        print(f"  {symbols[passed]}: {label} ({elapsed:.1f}s)")

    failed = [label for label, passed, _ in results if passed is False]
    print(f"\n  Passed: {sum(1 for _, p, _ in results if p is True)}")
    print(f"  Failed: {len(failed)}")
    print(f"  Skipped: {sum(1 for _, p, _ in results if p is None)}")

    print("\n" + "=" * 70)
    if failed:
        print(f"FAILED: {', '.join(label.split(')')[0] for label in failed)} - SEE ABOVE FOR DETAILS")
    else:
        print("ALL SMOKE TESTS PASSED")
    print("=" * 70)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
