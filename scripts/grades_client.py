#!/usr/bin/env python3
"""Command-line client for a running GradesService.

Examples:
    python scripts/grades_client.py --secret dev add --student s1 --course MATH101 --semester 2025A --value A
    python scripts/grades_client.py --secret dev course --course MATH101 --semester 2025A
    python scripts/grades_client.py --token <jwt> remove --grade-id <id>
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import grpc
import jwt
from google.protobuf import json_format

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from grpc_app.generated import grades_pb2, grades_pb2_grpc  # noqa: E402


def _sign(secret: str, subject: str, algorithm: str = "HS256") -> str:
    payload = {
        "sub": subject,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def _grade_from_args(args: argparse.Namespace) -> grades_pb2.SingleGrade:
    return grades_pb2.SingleGrade(
        grade_id=args.grade_id or "",
        student_id=args.student or "",
        course_id=args.course or "",
        semester=args.semester or "",
        grade_type=args.type or "",
        item_id=args.item or "",
        grade_value=args.value or "",
        graded_by=args.graded_by or "",
        comments=args.comments or "",
    )


def _add_grade_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--grade-id", default="")
    p.add_argument("--student", default="")
    p.add_argument("--course", default="")
    p.add_argument("--semester", default="")
    p.add_argument("--type", default="")
    p.add_argument("--item", default="")
    p.add_argument("--value", default="")
    p.add_argument("--graded-by", default="")
    p.add_argument("--comments", default="")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--target", default="localhost:50051")
    auth = parser.add_mutually_exclusive_group(required=True)
    auth.add_argument("--token", help="bearer token sent with every request")
    auth.add_argument("--secret", help="sign a short-lived token locally with this secret")
    parser.add_argument("--subject", default="grades-client")
    sub = parser.add_subparsers(dest="command", required=True)

    _add_grade_options(sub.add_parser("add", help="AddSingleGrade"))
    _add_grade_options(sub.add_parser("update", help="UpdateSingleGrade (non-empty fields only)"))

    p = sub.add_parser("remove", help="RemoveSingleGrade")
    p.add_argument("--grade-id", required=True)

    p = sub.add_parser("course", help="GetCourseGrades")
    p.add_argument("--course", required=True)
    p.add_argument("--semester", required=True)

    p = sub.add_parser("student-course", help="GetStudentCourseGrades")
    p.add_argument("--course", required=True)
    p.add_argument("--semester", required=True)
    p.add_argument("--student", required=True)

    p = sub.add_parser("student-semester", help="GetStudentSemesterGrades")
    p.add_argument("--student", required=True)
    p.add_argument("--semester", required=True)
    return parser


async def run(args: argparse.Namespace) -> int:
    token = args.token or _sign(args.secret, args.subject)
    async with grpc.aio.insecure_channel(args.target) as channel:
        stub = grades_pb2_grpc.GradesServiceStub(channel)
        try:
            if args.command == "add":
                resp = await stub.AddSingleGrade(grades_pb2.AddSingleGradeRequest(token=token, grade=_grade_from_args(args)))
            elif args.command == "update":
                resp = await stub.UpdateSingleGrade(grades_pb2.UpdateSingleGradeRequest(token=token, grade=_grade_from_args(args)))
            elif args.command == "remove":
                resp = await stub.RemoveSingleGrade(grades_pb2.RemoveSingleGradeRequest(token=token, grade_id=args.grade_id))
            elif args.command == "course":
                resp = await stub.GetCourseGrades(grades_pb2.GetCourseGradesRequest(
                    token=token, course_id=args.course, semester=args.semester))
            elif args.command == "student-course":
                resp = await stub.GetStudentCourseGrades(grades_pb2.GetStudentCourseGradesRequest(
                    token=token, course_id=args.course, semester=args.semester, student_id=args.student))
            else:
                resp = await stub.GetStudentSemesterGrades(grades_pb2.GetStudentSemesterGradesRequest(
                    token=token, student_id=args.student, semester=args.semester))
        except grpc.aio.AioRpcError as exc:
            print(f"{exc.code().name}: {exc.details()}", file=sys.stderr)
            return 1
    print(json_format.MessageToJson(resp, preserving_proto_field_name=True))
    return 0


def main() -> int:
    return asyncio.run(run(build_parser().parse_args()))


if __name__ == "__main__":
    sys.exit(main())
