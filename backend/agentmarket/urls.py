"""
Agentmarket URL Configuration
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """Root endpoint with API information."""
    return JsonResponse({
        'message': 'Agent Marketplace Community API',
        'version': '1.0',
        'endpoints': {
            'agents': '/api/agents/<id>/',
            'discussions': '/api/agents/<id>/discussions/',
            'comments': '/api/discussions/<id>/comments/',
            'comment_tree': '/api/discussions/<id>/comments/tree/',
            'reviews': '/api/agents/<id>/reviews/',
            'review_summary': '/api/agents/<id>/reviews/summary/',
            'auth': '/api/auth/',
        },
        'admin': '/admin/',
    })


urlpatterns = [
    path('', api_root, name='api-root'),
    path('admin/', admin.site.urls),
    path('api/', include('community.urls')),
]
