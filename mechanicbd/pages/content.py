FAQS = [
    ("How do I book a service?",
     "Booking a service is easy! Simply browse our available services, select the one you need, choose your "
     "preferred mechanic, and complete the booking form with your details and service requirements. You can "
     "also specify your preferred date and time for the service."),
    ("What payment methods do you accept?",
     "We accept all major mobile financial services in Bangladesh including bKash, Nagad, Rocket, and other "
     "popular payment methods. All payments are processed securely through our trusted payment partners."),
    ("Are your mechanics verified and qualified?",
     "Yes, all our mechanics go through a thorough verification process including background checks, skill "
     "assessments, and customer reviews. We only work with qualified, experienced professionals who meet our "
     "high standards."),
    ("What if I'm not satisfied with the service?",
     "We have a satisfaction guarantee. If you're not happy with the service, contact our support team "
     "immediately and we'll work to resolve the issue. We may offer a refund or arrange for the service to be "
     "redone by another mechanic."),
    ("Can I cancel or reschedule my booking?",
     "Yes, you can cancel or reschedule your booking up to 24 hours before the scheduled service time. "
     "Cancellations made within 24 hours may be subject to a cancellation fee. Contact our support team to "
     "make changes to your booking."),
    ("How do I know the mechanic is reliable?",
     "All our mechanics are rated and reviewed by previous customers. You can see their ratings, reviews, and "
     "service history before booking. We also monitor their performance and only work with mechanics who "
     "maintain high standards."),
    ("What types of vehicles do you service?",
     "We service all types of vehicles including cars, motorcycles, trucks, and commercial vehicles. Our "
     "mechanics are specialized in different vehicle types and brands, so you can find the right expert for "
     "your specific vehicle."),
    ("Do you provide emergency services?",
     "Yes, we offer emergency roadside assistance for urgent situations like breakdowns, flat tires, and "
     "battery issues. Emergency services are available 24/7, though response times may vary based on location "
     "and availability."),
    ("How much do your services cost?",
     "Service costs vary depending on the type of service, vehicle, and location. All prices are clearly "
     "displayed before booking with no hidden fees. You'll get a detailed quote that includes all costs upfront."),
    ("Can I track my service progress?",
     "Yes! You can track your service progress in real-time through our platform. You'll receive updates when "
     "the mechanic is on the way, when they arrive, and when the service is completed. You can also "
     "communicate directly with the mechanic through our chat feature."),
    ("What if the mechanic doesn't show up?",
     "If a mechanic doesn't show up for a scheduled appointment, contact our support team immediately. We'll "
     "either arrange for another mechanic or provide a full refund. We take reliability very seriously and have "
     "strict policies for our mechanics."),
    ("Do you provide warranty on services?",
     "Yes, we provide warranty on most services. The warranty period varies by service type and is clearly "
     "stated when you book. If there are any issues with the service within the warranty period, we'll fix it "
     "at no additional cost."),
]

# Indexes into FAQS
FAQ_CATEGORIES = [
    ("Booking & Services", [0, 1, 2, 6, 7]),
    ("Payment & Pricing", [1, 8]),
    ("Quality & Support", [2, 3, 5, 11]),
    ("Service Management", [4, 9, 10]),
]
