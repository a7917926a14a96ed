#!/usr/bin/env python3
"""
Solar & ECO4 Dashboard Backend API Testing Suite
Smoke-tests every endpoint of a running deployment.

Usage:
    DASHBOARD_API_URL=https://... DASHBOARD_TOKEN=<supabase access token> python backend_test.py
"""

import os
import requests
import sys
from datetime import datetime
from typing import Dict, Optional, Tuple

VIEWS = ("field-rep", "account-manager", "company-kpis", "financials", "installers")


class DashboardAPITester:
    def __init__(self, base_url: str = None, token: str = None):
        self.base_url = (base_url or os.environ.get("DASHBOARD_API_URL") or "http://localhost:8001").rstrip("/")
        self.api_url = f"{self.base_url}/api"
        self.token = token or os.environ.get("DASHBOARD_TOKEN")
        self.profile = None
        self.tests_run = 0
        self.tests_passed = 0
        self.failed_tests = []

    def log(self, message: str, level: str = "INFO"):
        """Log test messages"""
        timestamp = datetime.now().strftime("%H:%M:%S")
        print(f"[{timestamp}] {level}: {message}")

    def run_test(self, name: str, method: str, endpoint: str, expected_status: int,
                 data: Optional[Dict] = None, params: Optional[Dict] = None,
                 authenticated: bool = True) -> Tuple[bool, Dict]:
        """Run a single API test"""
        url = f"{self.api_url}/{endpoint}"
        test_headers = {'Content-Type': 'application/json'}

        if self.token and authenticated:
            test_headers['Authorization'] = f'Bearer {self.token}'

        self.tests_run += 1
        self.log(f"Testing {name}...")

        try:
            if method == 'GET':
                response = requests.get(url, headers=test_headers, params=params, timeout=60)
            elif method == 'PUT':
                response = requests.put(url, json=data, headers=test_headers, timeout=30)
            else:
                raise ValueError(f"Unsupported method: {method}")

            success = response.status_code == expected_status

            try:
                body = response.json()
            except ValueError:
                body = {"error": response.text}

            if success:
                self.tests_passed += 1
                self.log(f"✅ {name} - Status: {response.status_code}", "PASS")
            else:
                self.log(f"❌ {name} - Expected {expected_status}, got {response.status_code}", "FAIL")
                self.log(f"   Response: {response.text[:200]}", "FAIL")
                self.failed_tests.append({
                    "test": name,
                    "endpoint": endpoint,
                    "expected": expected_status,
                    "actual": response.status_code,
                    "response": response.text[:200]
                })
            return success, body

        except (requests.RequestException, ValueError) as e:
            self.log(f"❌ {name} - Error: {str(e)}", "ERROR")
            self.failed_tests.append({
                "test": name,
                "endpoint": endpoint,
                "error": str(e)
            })
            return False, {"error": str(e)}

    def test_health_check(self):
        """Test API health check"""
        return self.run_test("Health Check", "GET", "health", 200, authenticated=False)

    def test_rejects_anonymous(self):
        return self.run_test("Anonymous /me rejected", "GET", "me", 401, authenticated=False)

    def test_get_profile(self):
        success, body = self.run_test("Get Profile", "GET", "me", 200)
        if success:
            self.profile = body
            self.log(f"   Signed in as {body.get('name')} ({body.get('role')})")
        return success, body

    @property
    def is_admin(self) -> bool:
        return bool(self.profile) and self.profile.get("role") == "admin"

    def test_business_line_preference(self):
        success, body = self.run_test("Get Business Line", "GET", "preferences/business-line", 200)
        if success:
            line = body.get("business_line", "solar")
            self.run_test("Put Business Line", "PUT", "preferences/business-line", 200,
                          data={"business_line": line})
        self.run_test("Reject Unknown Business Line", "PUT", "preferences/business-line", 400,
                      data={"business_line": "wind"})

    def test_reps(self):
        expected = 200 if self.is_admin else 403
        return self.run_test("List Reps", "GET", "reps", expected)

    def test_leads(self, business: str):
        # Non-admins have no ECO4 access at all
        expected = 403 if business == "eco4" and not self.is_admin else 200
        success, body = self.run_test(f"{business} leads", "GET", f"{business}/leads", expected,
                                      params={"period": "this_month"})
        if success and expected == 200:
            self.log(f"   {body.get('count', 0)} leads this month")
        self.run_test(f"{business} leads bad period", "GET", f"{business}/leads", 400,
                      params={"period": "fortnight"})

    def test_views(self, business: str):
        for view in VIEWS:
            if view in ("company-kpis", "financials", "installers") and not self.is_admin:
                expected = 403
            elif business == "eco4" and not self.is_admin:
                expected = 403
            else:
                expected = 200
            self.run_test(f"{business} {view} view", "GET", f"{business}/views/{view}", expected)

    def run_all_tests(self):
        """Run all API tests in sequence"""
        self.log("🚀 Starting Dashboard API Test Suite")
        self.log(f"   API URL: {self.api_url}")

        self.test_health_check()
        self.test_rejects_anonymous()

        if not self.token:
            self.log("DASHBOARD_TOKEN not set; skipping authenticated endpoints", "WARN")
            return self.print_summary()

        self.test_get_profile()
        self.test_business_line_preference()
        self.test_reps()

        for business in ("solar", "eco4"):
            self.test_leads(business)
            self.test_views(business)

        return self.print_summary()

    def print_summary(self):
        """Print test results summary"""
        self.log("=" * 60)
        self.log("📊 TEST SUMMARY")
        self.log(f"   Total Tests: {self.tests_run}")
        self.log(f"   Passed: {self.tests_passed}")
        self.log(f"   Failed: {len(self.failed_tests)}")
        self.log(f"   Success Rate: {(self.tests_passed/self.tests_run*100):.1f}%")

        if self.failed_tests:
            self.log("\n❌ FAILED TESTS:")
            for test in self.failed_tests:
                error_msg = test.get('error', f"Status {test.get('actual')} != {test.get('expected')}")
                self.log(f"   • {test['test']}: {error_msg}")

        self.log("=" * 60)

        return len(self.failed_tests) == 0


def main():
    """Main test runner"""
    tester = DashboardAPITester()
    success = tester.run_all_tests()

    # Return appropriate exit code
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
